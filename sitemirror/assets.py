"""
Asset Fetcher
Downloads same-origin images, stylesheets, and scripts referenced by a
rendered page and stores them under the resolver's paths.

Assets are best-effort: every fetch is isolated, and a failure is recorded
as a ``RecoverableError`` instead of being raised.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import requests

from .errors import AssetError, RecoverableError
from .models import ProxyDescriptor
from .paths import output_path
from .run_config import MirrorRunConfig
from .scope import OriginScope, canonicalize_link

logger = logging.getLogger(__name__)


@dataclass
class AssetReport:
    """Outcome of fetching one page's assets."""
    saved: List[str] = field(default_factory=list)
    skipped: int = 0
    errors: List[RecoverableError] = field(default_factory=list)

    @property
    def summary(self) -> str:
        text = f"{len(self.saved)} saved, {self.skipped} skipped"
        if self.errors:
            text += f", {len(self.errors)} failed"
        return text


class AssetFetcher:
    """
    Fetches page assets with a requests session bound to one job.

    The session carries the job's proxy and, once ``share_cookies`` has been
    called, the browsing context's cookies, so assets behind a login are
    fetched as the logged-in user. An asset saved once is not fetched again
    during the same job.
    """

    def __init__(
        self,
        config: MirrorRunConfig,
        scope: OriginScope,
        output_dir,
        proxy: Optional[ProxyDescriptor] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config
        self.scope = scope
        self.output_dir = Path(output_dir)
        self.session = session if session is not None else self._create_session(proxy)
        self._seen: Set[str] = set()

    def _create_session(self, proxy: Optional[ProxyDescriptor]) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            'User-Agent': self.config.user_agent,
            'Accept': '*/*',
            'Accept-Language': 'en-US,en;q=0.9',
        })
        if proxy:
            session.proxies.update(proxy.for_requests())
        return session

    def share_cookies(self, cookies: Iterable[Dict]) -> None:
        """Copy browser cookies (Playwright format) into the HTTP session."""
        count = 0
        for cookie in cookies:
            name = cookie.get('name')
            if not name:
                continue
            self.session.cookies.set(
                name,
                cookie.get('value', ''),
                domain=cookie.get('domain', ''),
                path=cookie.get('path', '/'),
            )
            count += 1
        if count:
            logger.debug(f"[ASSET] Shared {count} browser cookies with asset session")

    async def fetch_page_assets(self, refs: Iterable[str], page_url: str) -> AssetReport:
        """Fetch all in-scope *refs* without blocking the event loop."""
        refs = list(refs)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.fetch_all, refs, page_url)

    def fetch_all(self, refs: Iterable[str], page_url: str) -> AssetReport:
        report = AssetReport()
        for ref in refs:
            url = canonicalize_link(ref, page_url)
            if url is None or not self.scope.accept(url) or url in self._seen:
                report.skipped += 1
                continue
            self._seen.add(url)
            try:
                report.saved.append(self.fetch(url))
            except AssetError as e:
                logger.debug(f"[ASSET] Skipped {url}: {e}")
                report.errors.append(RecoverableError.from_exception(e, url))
        return report

    def fetch(self, url: str) -> str:
        """Download one asset and write it to disk.

        Returns:
            The path written, relative to the output directory.

        Raises:
            AssetError: network failure, non-success status, or write failure.
        """
        try:
            response = self.session.get(url, timeout=self.config.asset_timeout_s)
        except requests.RequestException as e:
            raise AssetError(f"Request failed: {e}") from e
        if not response.ok:
            raise AssetError(f"HTTP {response.status_code}")

        try:
            target = output_path(self.output_dir, url)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(response.content)
        except (OSError, ValueError) as e:
            raise AssetError(f"Could not write asset: {e}") from e
        return target.relative_to(self.output_dir.resolve()).as_posix()

    def close(self) -> None:
        self.session.close()
