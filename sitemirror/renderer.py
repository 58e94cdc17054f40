"""
Page Renderer Adapter
=====================
Thin contract over the headless browser used by the engine and the
authenticator.

- ``PageRenderer``        : abstract contract (navigate, content, links, assets,
                            selector wait, fill, click)
- ``PlaywrightRenderer``  : Chromium via async Playwright
- ``rendering_session``   : scoped acquisition: the browser is always closed,
                            including on the fatal-error path

One renderer owns ONE browsing context per job (not per page), so cookies
set during login persist across the whole crawl.

Every Playwright exception is translated here: navigation failures become
``NavigationError``, failed interactions become ``RendererError``, and a
browser that cannot start becomes ``SetupError``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .errors import NavigationError, RendererError, SetupError
from .models import ProxyDescriptor
from .run_config import MirrorRunConfig

logger = logging.getLogger(__name__)


_LINKS_JS = """
() => Array.from(document.querySelectorAll('a[href]'))
    .map(a => a.href)
    .filter(Boolean)
"""

_ASSETS_JS = """
() => {
    const refs = [];
    document.querySelectorAll('img[src]').forEach(img => refs.push(img.src));
    document.querySelectorAll('link[rel="stylesheet"]').forEach(link => refs.push(link.href));
    document.querySelectorAll('script[src]').forEach(s => refs.push(s.src));
    return refs.filter(Boolean);
}
"""

_LAUNCH_ARGS = ['--no-sandbox', '--disable-setuid-sandbox']


class PageRenderer(ABC):
    """Contract the engine and authenticator consume.

    Subclasses MUST raise:
        - ``SetupError``       from ``open()`` if the browser cannot start
        - ``NavigationError``  from ``navigate()`` on timeout / unreachable host
        - ``RendererError``    from ``wait_for_selector`` / ``fill`` / ``click``
    """

    @abstractmethod
    async def open(self) -> None:
        """Start the browser and create the job's browsing context."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the browser. Must be safe to call more than once."""
        ...

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int, wait_until: str = "networkidle") -> None:
        ...

    @property
    @abstractmethod
    def current_url(self) -> str:
        ...

    @abstractmethod
    async def content(self) -> str:
        """Serialized markup of the fully rendered document."""
        ...

    @abstractmethod
    async def extract_links(self) -> List[str]:
        """All anchor targets, resolved against the current document."""
        ...

    @abstractmethod
    async def extract_asset_refs(self) -> List[str]:
        """Image, stylesheet, and script source URLs of the current document."""
        ...

    @abstractmethod
    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        ...

    @abstractmethod
    async def fill(self, selector: str, value: str) -> None:
        ...

    @abstractmethod
    async def click(self, selector: str) -> None:
        ...

    async def pause(self, ms: int) -> None:
        await asyncio.sleep(ms / 1000)

    async def cookies(self) -> List[Dict]:
        """Cookies of the browsing context (used to share the session with asset downloads)."""
        return []


RendererFactory = Callable[[MirrorRunConfig, Optional[ProxyDescriptor]], PageRenderer]


class PlaywrightRenderer(PageRenderer):
    """Headless Chromium renderer.

    Usage::

        renderer = PlaywrightRenderer(MirrorRunConfig(), proxy=None)
        async with rendering_session(renderer):
            await renderer.navigate("https://example.com/", timeout_ms=30_000)
            html = await renderer.content()
    """

    def __init__(self, config: MirrorRunConfig, proxy: Optional[ProxyDescriptor] = None):
        self.config = config
        self.proxy = proxy
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def open(self) -> None:
        launch_kwargs = dict(headless=self.config.headless, args=list(_LAUNCH_ARGS))
        if self.proxy:
            launch_kwargs["proxy"] = self.proxy.for_playwright()
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(**launch_kwargs)
            self._context = await self._browser.new_context(user_agent=self.config.user_agent)
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise SetupError(f"Browser launch failed: {_first_line(e)}") from e
        logger.info(
            f"Playwright browser initialized (headless={self.config.headless}"
            f"{', proxy' if self.proxy else ''})"
        )

    async def close(self) -> None:
        if self._context:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing context: {e}")
            self._context = None
            self._page = None
        if self._browser:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing browser: {e}")
            self._browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except PlaywrightError as e:
                logger.debug(f"Error stopping Playwright: {e}")
            self._playwright = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RendererError("Renderer is not open")
        return self._page

    @property
    def current_url(self) -> str:
        return self._page.url if self._page else ""

    async def navigate(self, url: str, timeout_ms: int, wait_until: str = "networkidle") -> None:
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise NavigationError(url, f"Timeout after {timeout_ms}ms") from e
        except PlaywrightError as e:
            raise NavigationError(url, _first_line(e)) from e

    async def content(self) -> str:
        try:
            return await self.page.content()
        except PlaywrightError as e:
            raise RendererError(f"Could not read page content: {_first_line(e)}") from e

    async def extract_links(self) -> List[str]:
        return await self._evaluate_list(_LINKS_JS)

    async def extract_asset_refs(self) -> List[str]:
        return await self._evaluate_list(_ASSETS_JS)

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        try:
            await self.page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise RendererError(f"Timeout waiting for {selector!r} ({timeout_ms}ms)") from e
        except PlaywrightError as e:
            raise RendererError(f"Selector {selector!r} failed: {_first_line(e)}") from e

    async def fill(self, selector: str, value: str) -> None:
        try:
            await self.page.fill(selector, value, timeout=self.config.selector_timeout_ms)
        except PlaywrightError as e:
            # The value is never included: it may be a password.
            raise RendererError(f"Could not fill {selector!r}: {_first_line(e)}") from e

    async def click(self, selector: str) -> None:
        try:
            await self.page.click(selector, timeout=self.config.selector_timeout_ms)
        except PlaywrightError as e:
            raise RendererError(f"Could not click {selector!r}: {_first_line(e)}") from e

    async def pause(self, ms: int) -> None:
        try:
            await self.page.wait_for_timeout(ms)
        except PlaywrightError as e:
            raise RendererError(f"Wait interrupted: {_first_line(e)}") from e

    async def cookies(self) -> List[Dict]:
        if self._context is None:
            return []
        try:
            return await self._context.cookies()
        except PlaywrightError as e:
            raise RendererError(f"Could not read cookies: {_first_line(e)}") from e

    async def _evaluate_list(self, script: str) -> List[str]:
        try:
            result = await self.page.evaluate(script)
        except PlaywrightError as e:
            raise RendererError(f"DOM query failed: {_first_line(e)}") from e
        return [item for item in result or [] if isinstance(item, str)]


def playwright_renderer_factory(
    config: MirrorRunConfig, proxy: Optional[ProxyDescriptor] = None
) -> PageRenderer:
    return PlaywrightRenderer(config, proxy=proxy)


@asynccontextmanager
async def rendering_session(renderer: PageRenderer) -> AsyncIterator[PageRenderer]:
    """Open *renderer* for the duration of the block; always close it."""
    await renderer.open()
    try:
        yield renderer
    finally:
        await renderer.close()


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__
