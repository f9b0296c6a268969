"""Base class for engines that render result pages in the shared browser."""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from nanosearch.browser.manager import DEFAULT_TAB_TIMEOUT, BrowserSessionManager
from nanosearch.engines.base import SearchEngine
from nanosearch.engines.errors import ChallengeDetected, ResourceUnavailable, TransportError
from nanosearch.engines.extract import ResultExtractor
from nanosearch.engines.models import EngineCapability, SearchResult
from nanosearch.engines.scraper import PagedScraper
from nanosearch.utils.redaction import redact_text

SCROLL_SCRIPT = "window.scrollTo(0, document.body.scrollHeight / 2)"


class BrowserSearchEngine(SearchEngine):
    """
    Navigate a borrowed tab to each results page and extract from the DOM.

    Each page gets its own tab from the ``BrowserSessionManager``; transient
    navigation failures are retried by the manager, challenges are not.
    """

    capability = EngineCapability.BROWSER_DRIVEN

    page_cap: int = 3
    wait_selector: str = ""
    settle_delay: float = 2.0
    scroll_delay: float = 0.5
    extractor: ResultExtractor

    def __init__(
        self,
        manager: BrowserSessionManager,
        proxy_url: str | None = None,
        *,
        headless: bool = True,
        timeout: float = DEFAULT_TAB_TIMEOUT,
        max_attempts: int | None = None,
    ):
        self.manager = manager
        self.proxy_url = proxy_url or None
        self.headless = headless
        self.timeout = timeout
        self.max_attempts = max_attempts

    async def search(self, query: str, limit: int) -> list[SearchResult]:
        try:
            await self.manager.ensure_ready(self.proxy_url, self.headless)
        except ResourceUnavailable as e:
            raise type(e)(self.name, f"failed to initialize browser: {e.message}") from e

        scraper = PagedScraper(
            self.name,
            lambda page: self.fetch_page(query, page),
            page_cap=self.page_cap,
        )
        outcome = await scraper.run(limit)
        logger.info(
            "{}: found {} result(s) for '{}' ({}, {} page(s))",
            self.name,
            len(outcome.results),
            query,
            outcome.stop_reason.value,
            outcome.pages_fetched,
        )
        return outcome.results

    def page_url(self, query: str, page: int) -> str:
        raise NotImplementedError

    async def fetch_page(self, query: str, page: int) -> list[SearchResult]:
        url = self.page_url(query, page)
        html = await self.manager.run_with_retries(lambda: self.render(url), self.max_attempts)
        logger.debug("{}: got page {} HTML, size {} bytes", self.name, page, len(html))

        marker = self.detect_challenge(html)
        if marker:
            raise ChallengeDetected(self.name, marker)
        return self.extractor.extract(html)

    async def render(self, url: str) -> str:
        logger.debug("{}: navigating to {}", self.name, url)
        try:
            async with self.manager.new_page(self.timeout) as tab:
                await tab.goto(url, wait_until="domcontentloaded")
                if self.wait_selector:
                    await self._wait_for_results(tab)
                if self.settle_delay > 0:
                    await asyncio.sleep(self.settle_delay)
                await tab.evaluate(SCROLL_SCRIPT)
                if self.scroll_delay > 0:
                    await asyncio.sleep(self.scroll_delay)
                return await tab.content()
        except TimeoutError as e:
            raise TransportError(self.name, f"browser navigation timed out after {self.timeout}s") from e
        except PlaywrightError as e:
            raise TransportError(self.name, f"browser navigation failed: {redact_text(str(e))}") from e

    async def _wait_for_results(self, tab: Any) -> None:
        try:
            await tab.wait_for_selector(self.wait_selector)
        except PlaywrightError as e:
            # A challenge page never renders the results container.
            marker = self.detect_challenge(await tab.content())
            if marker:
                raise ChallengeDetected(self.name, marker) from e
            raise
