"""
Shared fixtures: a scripted in-memory renderer and asset fetcher so the
engine can be exercised without launching a browser or touching the network.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from sitemirror.assets import AssetFetcher, AssetReport
from sitemirror.errors import NavigationError, RendererError, SetupError
from sitemirror.job_store import JobStore
from sitemirror.renderer import PageRenderer
from sitemirror.run_config import MirrorRunConfig


class FakePage:
    def __init__(self, html: str = "<html></html>", links=None, assets=None):
        self.html = html
        self.links = list(links or [])
        self.assets = list(assets or [])


class FakeRenderer(PageRenderer):
    """Renderer double serving a dict of ``url -> FakePage``.

    URLs listed in ``fail_urls`` raise ``NavigationError``; selectors in
    ``missing_selectors`` raise ``RendererError`` from waits, fills, and clicks.
    """

    def __init__(
        self,
        pages: Dict[str, FakePage],
        fail_urls=(),
        missing_selectors=(),
        fail_open: bool = False,
    ):
        self.pages = pages
        self.fail_urls = set(fail_urls)
        self.missing_selectors = set(missing_selectors)
        self.fail_open = fail_open
        self.opened = False
        self.closed = False
        self.navigations: List[str] = []
        self.filled: Dict[str, str] = {}
        self.clicked: List[str] = []
        self.paused_ms: List[int] = []
        self.on_navigate = None
        self._current: Optional[str] = None

    async def open(self) -> None:
        if self.fail_open:
            raise SetupError("Browser launch failed: no browser")
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def navigate(self, url: str, timeout_ms: int, wait_until: str = "networkidle") -> None:
        self.navigations.append(url)
        if self.on_navigate:
            self.on_navigate(url)
        if url in self.fail_urls or url not in self.pages:
            raise NavigationError(url, f"Timeout after {timeout_ms}ms")
        self._current = url

    @property
    def current_url(self) -> str:
        return self._current or ""

    async def content(self) -> str:
        return self.pages[self._current].html

    async def extract_links(self) -> List[str]:
        return list(self.pages[self._current].links)

    async def extract_asset_refs(self) -> List[str]:
        return list(self.pages[self._current].assets)

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        if selector in self.missing_selectors:
            raise RendererError(f"Timeout waiting for {selector!r} ({timeout_ms}ms)")

    async def fill(self, selector: str, value: str) -> None:
        if selector in self.missing_selectors:
            raise RendererError(f"Could not fill {selector!r}")
        self.filled[selector] = value

    async def click(self, selector: str) -> None:
        if selector in self.missing_selectors:
            raise RendererError(f"Could not click {selector!r}")
        self.clicked.append(selector)

    async def pause(self, ms: int) -> None:
        self.paused_ms.append(ms)


class RecordingAssetFetcher(AssetFetcher):
    """Asset fetcher that records refs instead of downloading them."""

    def __init__(self, config, scope, output_dir, proxy=None):
        super().__init__(config, scope, output_dir, proxy=proxy)
        self.requested: List[str] = []

    async def fetch_page_assets(self, refs, page_url) -> AssetReport:
        refs = list(refs)
        self.requested.extend(refs)
        return AssetReport(skipped=len(refs))


@pytest.fixture
def config():
    return MirrorRunConfig(post_submit_delay_ms=0)


@pytest.fixture
def store(tmp_path):
    return JobStore(output_root=str(tmp_path / "downloads"))


@pytest.fixture
def make_renderer():
    """Factory fixture: ``make_renderer(pages, ...)`` -> (renderer, factory)."""

    def _make(pages, **kwargs):
        renderer = FakeRenderer(pages, **kwargs)
        return renderer, (lambda config, proxy=None: renderer)

    return _make


def run(coro):
    return asyncio.run(coro)
