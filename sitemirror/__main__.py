#!/usr/bin/env python3
"""
Command-line interface for Site Mirror
======================================
Mirror one website into a ZIP archive and follow the job's progress.

All configuration flows through ``MirrorRunConfig``; credentials may come
from flags or from ``MIRROR_USERNAME`` / ``MIRROR_PASSWORD`` (a ``.env``
file is loaded first), and ``PROXY_TARGET`` supplies a default proxy.

Run with: python -m sitemirror https://example.com/
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ValidationError
from .models import AuthDescriptor, JobStatus
from .run_config import MirrorRunConfig
from .service import MirrorService

logger = logging.getLogger(__name__)

_POLL_INTERVAL_S = 0.5


def _load_env() -> None:
    """Load ``.env`` from the project root, falling back to the CWD."""
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sitemirror',
        description='Mirror a website (pages + same-host assets) into a ZIP archive',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m sitemirror https://example.com
  python -m sitemirror https://example.com --max-pages 50 --output-dir ./mirrors
  python -m sitemirror https://intranet.example.com/login \\
      --username-selector '#user' --password-selector '#pass' \\
      --submit-selector 'button[type=submit]' --success-selector '#dashboard'
        """
    )
    defaults = MirrorRunConfig()

    parser.add_argument('url', help='Seed URL (http/https)')
    parser.add_argument('--max-pages', type=int, default=defaults.max_pages,
                        help=f'Maximum pages to process (default: {defaults.max_pages})')
    parser.add_argument('--timeout', type=float, default=defaults.page_timeout_ms / 1000,
                        help=f'Per-page navigation timeout in seconds '
                             f'(default: {defaults.page_timeout_ms // 1000})')
    parser.add_argument('--output-dir', type=str, default=defaults.output_root,
                        help=f'Root directory for job output and archives '
                             f'(default: {defaults.output_root})')
    parser.add_argument('--proxy', type=str, help='Upstream proxy URI (or set PROXY_TARGET)')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    # ── Authentication flags ──────────────────────────────────────
    auth_group = parser.add_argument_group(
        'Authentication',
        'Fill-and-submit login performed once before crawling. '
        'Credentials may also come from MIRROR_USERNAME / MIRROR_PASSWORD.')
    auth_group.add_argument('--username', type=str, help='Login username')
    auth_group.add_argument('--password', type=str, help='Login password')
    auth_group.add_argument('--username-selector', type=str, help='CSS selector of the username field')
    auth_group.add_argument('--password-selector', type=str, help='CSS selector of the password field')
    auth_group.add_argument('--submit-selector', type=str, help='CSS selector of the submit control')
    auth_group.add_argument('--success-selector', type=str,
                            help='CSS selector that appears after a successful login '
                                 '(omit for a fixed delay instead)')
    return parser


def auth_from_args(args) -> Optional[AuthDescriptor]:
    """Build an ``AuthDescriptor`` from flags, or None if no auth flag was given."""
    fields = {
        'username': args.username,
        'password': args.password,
        'username_selector': args.username_selector,
        'password_selector': args.password_selector,
        'submit_selector': args.submit_selector,
        'success_selector': args.success_selector,
    }
    if not any(fields.values()):
        return None
    return AuthDescriptor.from_mapping(fields)


def follow_job(service: MirrorService, job_id: str) -> int:
    """Print new log lines and progress until the job is terminal. Returns an exit code."""
    printed = 0
    last_progress = -1
    while True:
        job = service.get_job(job_id)
        for entry in job.logs[printed:]:
            print(f"  {entry.timestamp[11:19]}  {entry.message}")
        printed = len(job.logs)
        if job.progress != last_progress:
            last_progress = job.progress
            print(f"  [{job.progress:3d}%] {job.status.value}")
        if job.status.is_terminal:
            break
        time.sleep(_POLL_INTERVAL_S)

    print("\n" + "=" * 60)
    print(f"  Job:      {job.id}")
    print(f"  Status:   {job.status.value}")
    if job.archive_available:
        print(f"  Archive:  {job.archive_path}")
    if job.error:
        print(f"  Reason:   {job.error}")
    print("=" * 60)
    return 0 if job.status == JobStatus.COMPLETED else 1


def main(argv=None) -> int:
    _load_env()
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    url = args.url
    if '://' not in url:
        # bare host; any explicit scheme is left for CrawlRequest.build to judge
        url = 'https://' + url

    try:
        cfg = MirrorRunConfig.from_cli_args(args)
    except ValueError as e:
        parser.error(str(e))
    cfg.log_summary(url)

    service = MirrorService(cfg)
    try:
        job_id = service.submit(url, auth=auth_from_args(args), proxy=args.proxy)
    except ValidationError as e:
        logger.error(f"Invalid request: {e}")
        return 2

    try:
        return follow_job(service, job_id)
    except KeyboardInterrupt:
        print("\nCancelling...")
        service.cancel_job(job_id)
        service.wait(job_id)
        return 130


if __name__ == '__main__':
    sys.exit(main())
