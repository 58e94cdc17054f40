"""
Unified Run Configuration
=========================
Single source of truth for ALL mirror defaults and runtime limits.

The engine, renderer, asset fetcher, and authenticator all read from
this object. CLI flags populate it via ``from_cli_args``; nothing else
hardcodes a limit or a timeout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_pages": 500,                # safety bound against unbounded same-origin sites
    "setup_timeout_ms": 60_000,      # seed navigation before authentication
    "page_timeout_ms": 30_000,       # every traversal navigation
    "wait_until": "networkidle",
    "selector_timeout_ms": 10_000,   # login field waits
    "success_timeout_ms": 15_000,    # login success indicator wait
    "post_submit_delay_ms": 3_000,   # unverified login heuristic
    "asset_timeout_s": 20.0,
    "headless": True,
    "output_root": "downloads",
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    # Progress model (percent)
    "progress_after_setup": 10,
    "progress_after_auth": 20,
    "progress_loop_ceiling": 80,
    "progress_before_archive": 85,
}


@dataclass
class MirrorRunConfig:
    """
    Configuration consumed by every mirror subsystem.

    Populate via:
      - ``MirrorRunConfig()``               → all defaults
      - ``MirrorRunConfig(max_pages=50)``   → override one value
      - ``MirrorRunConfig.from_cli_args(ns)`` → from argparse Namespace
    """

    # ---- Crawl limits ----
    max_pages: int = _DEFAULTS["max_pages"]
    setup_timeout_ms: int = _DEFAULTS["setup_timeout_ms"]
    page_timeout_ms: int = _DEFAULTS["page_timeout_ms"]
    wait_until: str = _DEFAULTS["wait_until"]

    # ---- Authentication waits ----
    selector_timeout_ms: int = _DEFAULTS["selector_timeout_ms"]
    success_timeout_ms: int = _DEFAULTS["success_timeout_ms"]
    post_submit_delay_ms: int = _DEFAULTS["post_submit_delay_ms"]

    # ---- Assets ----
    asset_timeout_s: float = _DEFAULTS["asset_timeout_s"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Output ----
    output_root: str = _DEFAULTS["output_root"]

    # ---- Progress model ----
    progress_after_setup: int = _DEFAULTS["progress_after_setup"]
    progress_after_auth: int = _DEFAULTS["progress_after_auth"]
    progress_loop_ceiling: int = _DEFAULTS["progress_loop_ceiling"]
    progress_before_archive: int = _DEFAULTS["progress_before_archive"]

    def __post_init__(self):
        if self.max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        if not (
            0 <= self.progress_after_setup
            <= self.progress_after_auth
            <= self.progress_loop_ceiling
            <= self.progress_before_archive
            < 100
        ):
            raise ValueError("progress milestones must be increasing and below 100")

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "MirrorRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        timeout_s = getattr(args, "timeout", None)
        max_pages = getattr(args, "max_pages", None)
        return cls(
            max_pages=_DEFAULTS["max_pages"] if max_pages is None else max_pages,
            page_timeout_ms=int(timeout_s * 1000) if timeout_s else _DEFAULTS["page_timeout_ms"],
            headless=not getattr(args, "headed", False),
            output_root=getattr(args, "output_dir", None) or _DEFAULTS["output_root"],
        )

    def loop_progress(self, processed: int, authenticated: bool) -> int:
        """Progress for *processed* pages: linear from the setup floor to the loop ceiling."""
        floor = self.progress_after_auth if authenticated else self.progress_after_setup
        span = self.progress_loop_ceiling - floor
        value = floor + int((processed / self.max_pages) * span)
        return min(value, self.progress_loop_ceiling)

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("MIRROR RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Max Pages:        {self.max_pages}")
        logger.info(f"  Page Timeout:     {self.page_timeout_ms}ms")
        logger.info(f"  Setup Timeout:    {self.setup_timeout_ms}ms")
        logger.info(f"  Asset Timeout:    {self.asset_timeout_s}s")
        logger.info(f"  Headless:         {self.headless}")
        logger.info(f"  Output Root:      {self.output_root}")
        logger.info("=" * 60)
