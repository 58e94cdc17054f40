"""
Mirror Engine
=============
Runs one mirror job end to end.

State machine::

    queued → running → completed
                     → failed      (SetupError, ArchiveError, unexpected error)
                     → cancelled   (cooperative check at the top of each iteration)

Traversal is breadth-first and strictly sequential: one page is navigated,
persisted, and asset-fetched at a time through a single browsing context.

Failure tiers:
- Per-page (``NavigationError``, renderer/disk errors) and per-asset errors
  are recorded as ``RecoverableError``, logged, and the loop moves on.
  Nothing is retried.
- Setup (browser launch, seed navigation) and archiving failures are fatal
  and handled once, at the top-level boundary in ``_execute``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, List, Optional, Set

from .archiver import ZipArchiver
from .assets import AssetFetcher
from .auth import FormAuthenticator
from .errors import (
    ArchiveError,
    JobNotFound,
    NavigationError,
    RecoverableError,
    RendererError,
    SetupError,
)
from .job_store import JobHandle, JobStore
from .models import CrawlRequest, Job, JobStatus, ProxyDescriptor
from .paths import output_path
from .renderer import PageRenderer, RendererFactory, playwright_renderer_factory, rendering_session
from .run_config import MirrorRunConfig
from .scope import OriginScope, canonicalize_link

logger = logging.getLogger(__name__)

AssetFetcherFactory = Callable[
    [MirrorRunConfig, OriginScope, Path, Optional[ProxyDescriptor]], AssetFetcher
]


def default_asset_fetcher_factory(
    config: MirrorRunConfig,
    scope: OriginScope,
    output_dir: Path,
    proxy: Optional[ProxyDescriptor],
) -> AssetFetcher:
    return AssetFetcher(config, scope, output_dir, proxy=proxy)


@dataclass
class CrawlStats:
    """Counters for one traversal."""
    pages_processed: int = 0
    pages_saved: int = 0
    pages_failed: int = 0
    assets_saved: int = 0
    assets_failed: int = 0
    frontier_remaining: int = 0
    cancelled: bool = False
    saved_paths: List[str] = field(default_factory=list)
    errors: List[RecoverableError] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return (
            f"Scraped {self.pages_processed} pages "
            f"({self.pages_saved} saved, {self.pages_failed} failed, "
            f"{self.assets_saved} assets)"
        )


class MirrorEngine:
    """
    Crawl engine for mirror jobs.

    Usage::

        store = JobStore(output_root="downloads")
        engine = MirrorEngine(store)
        request = CrawlRequest.build("https://example.com/")
        job_id = store.create(request.url)
        job = engine.run_sync(job_id, request)
    """

    def __init__(
        self,
        store: JobStore,
        config: Optional[MirrorRunConfig] = None,
        renderer_factory: Optional[RendererFactory] = None,
        archiver: Optional[ZipArchiver] = None,
        asset_fetcher_factory: Optional[AssetFetcherFactory] = None,
    ):
        self.store = store
        self.config = config if config is not None else MirrorRunConfig()
        self.renderer_factory = (
            renderer_factory if renderer_factory is not None
            else playwright_renderer_factory
        )
        self.archiver = archiver if archiver is not None else ZipArchiver()
        self.asset_fetcher_factory = (
            asset_fetcher_factory if asset_fetcher_factory is not None
            else default_asset_fetcher_factory
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run_sync(self, job_id: str, request: CrawlRequest) -> Optional[Job]:
        """Sync wrapper: run the job from synchronous code (e.g. a worker thread)."""
        return asyncio.run(self.run(job_id, request))

    async def run(self, job_id: str, request: CrawlRequest) -> Optional[Job]:
        """Execute *job_id* to a terminal state.

        Returns:
            The final job snapshot, or None if the job was deleted mid-run.

        Raises:
            JobNotFound / JobConflict: the job does not exist, is terminal,
                or is already held by another run.
        """
        self.store.claim_run(job_id)
        job = JobHandle(self.store, job_id)
        try:
            await self._execute(job, request)
        finally:
            self.store.release_run(job_id)
        try:
            return job.snapshot()
        except JobNotFound:
            return None

    # ------------------------------------------------------------------
    # Top-level recovery boundary
    # ------------------------------------------------------------------

    async def _execute(self, job: JobHandle, request: CrawlRequest) -> None:
        job.status(JobStatus.RUNNING)
        job.log(f"Starting scrape of {request.url}")

        try:
            snapshot = job.snapshot()
            output_dir = Path(snapshot.output_dir)
            try:
                output_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise SetupError(f"Cannot create output directory {output_dir}: {e}") from e

            if request.proxy:
                job.log(f"Using proxy: {request.proxy.server}")

            renderer = self.renderer_factory(self.config, request.proxy)
            async with rendering_session(renderer):
                job.log("Browser launched successfully")
                authenticated = await self._setup(job, renderer, request)
                stats = await self._traverse(job, renderer, request, output_dir, authenticated)
                job.log(stats.summary)
            job.log("Browser closed")

            if stats.cancelled:
                job.log(f"Cancelled after {stats.pages_processed} pages; no archive produced")
                job.status(JobStatus.CANCELLED, error="Cancelled by request")
                return

            job.progress(self.config.progress_before_archive)
            job.log("Creating ZIP archive...")
            archive_path = output_dir.parent / f"{job.job_id}.zip"
            loop = asyncio.get_running_loop()
            written = await loop.run_in_executor(
                None, self.archiver.package, output_dir, archive_path
            )
            if job.cancel_requested or not job.archive(written):
                # deleted or cancelled while packaging: the archive has no owner
                _discard_archive(written)
                job.log("Cancelled during archiving; archive removed")
                job.status(JobStatus.CANCELLED, error="Cancelled by request")
                return
            job.log(f"ZIP created: {Path(written).stat().st_size} bytes")
            job.log("Scrape completed! ZIP file ready for download")
            job.status(JobStatus.COMPLETED)

        except (SetupError, ArchiveError) as e:
            self._fail(job, e)
        except JobNotFound:
            logger.info(f"[JOB] {job.job_id} was deleted during its run")
        except Exception as e:
            logger.error(f"[JOB] {job.job_id} unexpected error: {e}", exc_info=True)
            self._fail(job, e)

    def _fail(self, job: JobHandle, error: Exception) -> None:
        message = str(error) or type(error).__name__
        job.log(f"ERROR: {message}")
        job.status(JobStatus.FAILED, error=message)

    # ------------------------------------------------------------------
    # Setup: seed navigation + optional authentication
    # ------------------------------------------------------------------

    async def _setup(self, job: JobHandle, renderer: PageRenderer, request: CrawlRequest) -> bool:
        """Navigate to the seed and log in if requested.

        Returns:
            True if an authentication attempt was made.

        Raises:
            SetupError: the seed page could not be reached.
        """
        job.log(f"Navigating to {request.url}")
        try:
            await renderer.navigate(
                request.url, self.config.setup_timeout_ms, self.config.wait_until
            )
        except NavigationError as e:
            raise SetupError(f"Seed page unreachable: {e}") from e
        job.progress(self.config.progress_after_setup)

        if request.auth is None:
            return False

        authenticator = FormAuthenticator(
            self.config, renderer, request.auth.resolve_credentials()
        )
        outcome = await authenticator.authenticate(job.log)
        if outcome.attempted:
            job.progress(self.config.progress_after_auth)
        return outcome.attempted

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def _traverse(
        self,
        job: JobHandle,
        renderer: PageRenderer,
        request: CrawlRequest,
        output_dir: Path,
        authenticated: bool,
    ) -> CrawlStats:
        """BFS over same-host pages until the frontier is empty or the cap is hit."""
        scope = OriginScope(request.url)
        seed = canonicalize_link(request.url, request.url) or request.url
        frontier: Deque[str] = deque([seed])
        discovered: Set[str] = {seed}   # every URL ever enqueued
        processed: Set[str] = set()
        stats = CrawlStats()
        max_pages = self.config.max_pages

        assets = self.asset_fetcher_factory(self.config, scope, output_dir, request.proxy)
        try:
            while frontier and stats.pages_processed < max_pages:
                if job.cancel_requested:
                    stats.cancelled = True
                    break

                url = frontier.popleft()
                if url in processed:
                    continue
                processed.add(url)
                stats.pages_processed += 1
                job.log(f"Scraping page {stats.pages_processed}: {url}")

                links = await self._process_page(job, renderer, assets, url, output_dir, stats)
                for link in scope.filter_links(links, renderer.current_url or url):
                    if link not in discovered:
                        discovered.add(link)
                        frontier.append(link)

                job.progress(self.config.loop_progress(stats.pages_processed, authenticated))
        finally:
            assets.close()

        stats.frontier_remaining = len(frontier)
        if frontier and not stats.cancelled:
            job.log(f"Page limit reached ({max_pages}); {len(frontier)} queued URLs discarded")
        return stats

    async def _process_page(
        self,
        job: JobHandle,
        renderer: PageRenderer,
        assets: AssetFetcher,
        url: str,
        output_dir: Path,
        stats: CrawlStats,
    ) -> List[str]:
        """Navigate, persist, fetch assets. Returns the raw link list (empty on failure)."""
        try:
            await renderer.navigate(url, self.config.page_timeout_ms, self.config.wait_until)
            html = await renderer.content()
            target = output_path(output_dir, url)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(html, encoding="utf-8")
        except (RendererError, OSError, ValueError) as e:
            self._record(job, stats, RecoverableError.from_exception(e, url),
                         f"Error scraping {url}: {e}")
            stats.pages_failed += 1
            return []

        stats.pages_saved += 1
        stats.saved_paths.append(target.relative_to(output_dir.resolve()).as_posix())

        try:
            refs = await renderer.extract_asset_refs()
            assets.share_cookies(await renderer.cookies())
            report = await assets.fetch_page_assets(refs, renderer.current_url or url)
        except RendererError as e:
            self._record(job, stats, RecoverableError.from_exception(e, url),
                         f"Asset download warning: {e}")
        else:
            stats.assets_saved += len(report.saved)
            stats.assets_failed += len(report.errors)
            stats.errors.extend(report.errors)
            if report.errors:
                job.log(f"Asset download warning: {report.summary} on {url}")

        try:
            return await renderer.extract_links()
        except RendererError as e:
            self._record(job, stats, RecoverableError.from_exception(e, url),
                         f"Link extraction warning: {e}")
            return []

    @staticmethod
    def _record(job: JobHandle, stats: CrawlStats, error: RecoverableError, message: str) -> None:
        stats.errors.append(error)
        logger.debug(f"[JOB] {job.job_id} recoverable: {error.describe()}")
        job.log(message)


def _discard_archive(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[ARCHIVE] Could not remove orphaned archive {path}: {e}")
