"""Breadth-first site crawler built on BrowserManager, Navigator and DomExtractor."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING

import structlog

from sitepilot.constants import (
    DEFAULT_CRAWL_DELAY_MS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    MAX_ENQUEUED_LINKS_PER_PAGE,
    STEP_DEADLINE_GRACE_SECONDS,
)
from sitepilot.crawler.browser import BrowserManager
from sitepilot.crawler.extractor import DomExtractor
from sitepilot.crawler.navigator import Navigator, normalize_url
from sitepilot.exceptions import CrawlerError
from sitepilot.models.domain import CrawlResult, CrawlTarget, PageRecord
from sitepilot.utils.sanitize import is_safe_url, sanitize_url

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = structlog.get_logger(__name__)


class Crawler:
    """Crawls one origin breadth-first, one page at a time."""

    def __init__(
        self,
        browser: BrowserManager | None = None,
        extractor: DomExtractor | None = None,
        headless: bool = True,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        crawl_delay_ms: int = DEFAULT_CRAWL_DELAY_MS,
        allow_private_urls: bool = True,
        fan_out: int = MAX_ENQUEUED_LINKS_PER_PAGE,
    ) -> None:
        self._browser = browser or BrowserManager(
            headless=headless, default_timeout_ms=navigation_timeout_ms
        )
        self._extractor = extractor or DomExtractor()
        self._navigation_timeout_ms = navigation_timeout_ms
        self._crawl_delay_ms = crawl_delay_ms
        self._allow_private_urls = allow_private_urls
        self._fan_out = fan_out

    async def crawl(self, target: CrawlTarget) -> CrawlResult:
        """Crawl from ``target.root_url`` within its depth and page bounds.

        Per-page failures are collected in ``errors`` and never abort the
        traversal. The browser is closed on every exit path.
        """
        root_url = sanitize_url(target.root_url)
        if not self._allow_private_urls and not is_safe_url(root_url):
            logger.warning("unsafe_url_blocked", url=root_url)
            return CrawlResult(pages=[], errors=[f"Unsafe URL blocked: {root_url}"])

        navigator = Navigator(
            base_url=root_url,
            max_depth=target.max_depth,
            fan_out=self._fan_out,
        )
        queue: deque[tuple[str, int]] = deque([(navigator.base_url, 0)])
        navigator.mark_queued(navigator.base_url)
        pages: list[PageRecord] = []
        errors: list[str] = []

        logger.info(
            "crawl_started",
            url=root_url,
            max_depth=target.max_depth,
            max_pages=target.max_pages,
        )

        await self._browser.launch()
        try:
            while queue and len(pages) < target.max_pages:
                url, depth = queue.popleft()
                if navigator.is_visited(url) or not navigator.is_within_depth(depth):
                    continue

                navigator.mark_visited(url)
                try:
                    record = await self._crawl_page(url, navigator)
                except Exception as e:
                    message = f"Failed to crawl {url}: {str(e) or type(e).__name__}"
                    errors.append(message)
                    logger.warning("page_crawl_failed", url=url, depth=depth, error=str(e))
                else:
                    if record is not None:
                        pages.append(record)
                        logger.info("page_crawled", url=url, depth=depth, links=len(record.links))
                        if depth < target.max_depth:
                            for link in navigator.next_links(url, record.links):
                                queue.append((link, depth + 1))

                if queue and len(pages) < target.max_pages and self._crawl_delay_ms > 0:
                    await asyncio.sleep(self._crawl_delay_ms / 1000)
        finally:
            await self._browser.close()

        logger.info("crawl_complete", url=root_url, pages=len(pages), errors=len(errors))
        return CrawlResult(pages=pages, errors=errors)

    async def _crawl_page(self, url: str, navigator: Navigator) -> PageRecord | None:
        """Load one page in its own context and extract it under a hard deadline."""
        deadline = 2 * self._navigation_timeout_ms / 1000 + STEP_DEADLINE_GRACE_SECONDS
        async with self._browser.page_session() as page:
            try:
                return await asyncio.wait_for(self._load_and_extract(page, url, navigator), deadline)
            except TimeoutError as e:
                raise CrawlerError(f"Timed out after {deadline:.0f}s") from e

    async def _load_and_extract(
        self, page: Page, url: str, navigator: Navigator
    ) -> PageRecord | None:
        """Load ``url`` and extract it; None when it redirected to a page already crawled."""
        await page.goto(url, wait_until="networkidle", timeout=self._navigation_timeout_ms)
        landed = normalize_url(page.url or url)
        if landed != url:
            if not navigator.is_same_origin(landed):
                raise CrawlerError(f"Redirected off-origin to {landed}")
            if navigator.is_visited(landed):
                logger.debug("redirect_to_visited_skipped", url=url, landed=landed)
                return None
            navigator.mark_visited(landed)
        return await self._extractor.extract(page, url)
