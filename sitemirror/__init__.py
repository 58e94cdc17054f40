"""
Site Mirror Package
Mirror a website into a downloadable archive: same-host BFS crawl through a
headless browser, optional form login, asset download, and ZIP packaging,
with a job store that reports live status, progress, and logs.

CLI Usage:
    python -m sitemirror <url> [options]

    Options:
        --max-pages     Maximum pages to process (default: 500)
        --timeout       Per-page navigation timeout in seconds (default: 30)
        --output-dir    Root directory for job output and archives
        --proxy         Upstream proxy URI
"""

from .archiver import ZipArchiver
from .assets import AssetFetcher, AssetReport
from .auth import AuthOutcome, FormAuthenticator
from .engine import CrawlStats, MirrorEngine
from .errors import (
    ArchiveError,
    AssetError,
    AuthenticationWarning,
    JobConflict,
    JobNotFound,
    MirrorError,
    NavigationError,
    RecoverableError,
    RendererError,
    SetupError,
    ValidationError,
)
from .job_store import JobHandle, JobStore
from .models import AuthDescriptor, CrawlRequest, Job, JobStatus, LogEntry, ProxyDescriptor
from .paths import resolve_path
from .renderer import PageRenderer, PlaywrightRenderer, rendering_session
from .run_config import MirrorRunConfig
from .scope import OriginScope, is_same_host
from .service import MirrorService

__all__ = [
    'MirrorService',
    'MirrorEngine',
    'CrawlStats',
    'MirrorRunConfig',
    'JobStore',
    'JobHandle',
    'Job',
    'JobStatus',
    'LogEntry',
    'CrawlRequest',
    'AuthDescriptor',
    'ProxyDescriptor',
    'PageRenderer',
    'PlaywrightRenderer',
    'rendering_session',
    'AssetFetcher',
    'AssetReport',
    'FormAuthenticator',
    'AuthOutcome',
    'ZipArchiver',
    'OriginScope',
    'is_same_host',
    'resolve_path',
    # Errors
    'MirrorError',
    'ValidationError',
    'RendererError',
    'NavigationError',
    'AssetError',
    'AuthenticationWarning',
    'ArchiveError',
    'SetupError',
    'JobNotFound',
    'JobConflict',
    'RecoverableError',
]

__version__ = '1.0.0'
