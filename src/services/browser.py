"""Shared headless browser for rendering receipt pages that need JavaScript."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.services.errors import ExtractionError, NetworkTimeoutError

logger = logging.getLogger(__name__)


class BrowserManager:
    """Owns one Chromium instance, launched on first use.

    The browser is shared, but pages are not: every render gets its own
    browser context, closed on the way out. Each owner (the API process, each
    Celery worker process) creates one manager and calls shutdown() when it
    stops.
    """

    def __init__(
        self,
        headless: bool = True,
        playwright_factory: Callable = async_playwright,
    ) -> None:
        self.headless = headless
        self._playwright_factory = playwright_factory
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock: asyncio.Lock | None = None

    @property
    def is_running(self) -> bool:
        """Check if a connected browser is available."""
        return self._browser is not None and self._browser.is_connected()

    async def _acquire_browser(self) -> Browser:
        loop = asyncio.get_running_loop()
        if self._loop is not loop:
            # Playwright objects are bound to the loop that created them
            if self._browser is not None:
                logger.warning("Event loop changed, discarding browser handle")
            self._browser = None
            self._playwright = None
            self._lock = asyncio.Lock()
            self._loop = loop

        async with self._lock:
            if self.is_running:
                return self._browser
            if self._browser is not None:
                logger.warning("Browser disconnected, relaunching")
            await self._close()

            logger.info("Launching headless Chromium")
            self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            return self._browser

    @asynccontextmanager
    async def page(self, user_agent: str | None = None) -> AsyncIterator[Page]:
        """Open a page in a fresh browser context."""
        browser = await self._acquire_browser()
        context = await browser.new_context(user_agent=user_agent)
        try:
            yield await context.new_page()
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning(f"Failed to close browser context: {e}")

    async def render(
        self,
        url: str,
        wait_for_selector: str | None = None,
        timeout: float = 45.0,
        user_agent: str | None = None,
    ) -> str:
        """Load url, wait for scripts to settle and return the rendered HTML."""
        timeout_ms = timeout * 1000
        try:
            async with self.page(user_agent=user_agent) as page:
                await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
                if wait_for_selector:
                    await page.wait_for_selector(wait_for_selector, timeout=timeout_ms)
                return await page.content()
        except PlaywrightTimeoutError as e:
            raise NetworkTimeoutError(f"Timed out after {timeout:g}s rendering {url}") from e
        except PlaywrightError as e:
            raise ExtractionError(f"Browser failed to render {url}: {e}") from e

    async def _close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing browser: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except PlaywrightError as e:
                logger.warning(f"Error stopping Playwright: {e}")

    async def shutdown(self) -> None:
        """Close the browser if one was launched."""
        if self._browser is None and self._playwright is None:
            return
        if self._loop is not asyncio.get_running_loop():
            logger.warning("Browser belongs to another event loop, dropping handle")
            self._browser = None
            self._playwright = None
            return
        await self._close()
        logger.info("Browser shut down")
