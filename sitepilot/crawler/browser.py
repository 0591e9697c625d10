"""Playwright browser management with scoped page contexts."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Self

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from sitepilot.constants import (
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
)
from sitepilot.exceptions import BrowserError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

logger = structlog.get_logger(__name__)

_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class BrowserManager:
    """Owns one headless Chromium instance and hands out page contexts."""

    def __init__(
        self,
        headless: bool = True,
        default_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
    ) -> None:
        self._headless = headless
        self._default_timeout_ms = default_timeout_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @property
    def is_launched(self) -> bool:
        return self._browser is not None

    async def launch(self) -> None:
        """Launch the browser. Calling it again on a live instance is a no-op."""
        if self._browser:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless, args=_LAUNCH_ARGS
            )
        except Exception as e:
            await self.close()
            raise BrowserError(f"Browser launch failed: {e}") from e
        logger.debug("browser_launched", headless=self._headless)

    async def new_context(self) -> BrowserContext:
        """Create an isolated context with the fixed desktop viewport."""
        if not self._browser:
            raise BrowserError("Browser not launched. Call launch() first.")
        return await self._browser.new_context(
            viewport={"width": DEFAULT_VIEWPORT_WIDTH, "height": DEFAULT_VIEWPORT_HEIGHT},
            ignore_https_errors=True,
        )

    async def new_page(self, context: BrowserContext) -> Page:
        """Create a new page in the given context with the default timeout applied."""
        page = await context.new_page()
        page.set_default_timeout(self._default_timeout_ms)
        return page

    @contextlib.asynccontextmanager
    async def page_session(self) -> AsyncIterator[Page]:
        """Yield a fresh page whose context is closed exactly once on exit."""
        context = await self.new_context()
        try:
            page = await self.new_page(context)
            yield page
        finally:
            try:
                await context.close()
            except Exception as e:
                logger.warning("context_close_failed", error=str(e))

    async def close(self) -> None:
        """Close browser and playwright."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        try:
            if browser:
                await browser.close()
        finally:
            if playwright:
                await playwright.stop()

    async def __aenter__(self) -> Self:
        await self.launch()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
