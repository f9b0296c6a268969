"""Base class for engines that scrape result pages over plain HTTP."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from nanosearch.engines.base import SearchEngine
from nanosearch.engines.errors import ChallengeDetected, SearchError, TransportError
from nanosearch.engines.extract import ResultExtractor
from nanosearch.engines.models import EngineCapability, SearchResult
from nanosearch.engines.scraper import PagedScraper
from nanosearch.utils.redaction import redact_text, redact_url

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 16_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.0 Mobile/15E148 Safari/604.1"
)

DESKTOP_HEADERS: dict[str, str] = {
    "User-Agent": DESKTOP_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}

DEFAULT_REQUEST_TIMEOUT = 30.0


class HttpSearchEngine(SearchEngine):
    """
    Shared fetch/detect/fallback/extract path for HTTP engines.

    Subclasses provide ``page_request`` and ``extractor`` and may override
    ``warmup`` and ``fallback_page``. One ``httpx.AsyncClient`` (and so one
    cookie jar) lives for exactly one ``search`` call.
    """

    capability = EngineCapability.HTTP_ONLY

    page_cap: int = 5
    default_page_delay: float = 0.3
    transport_retries: int = 1
    retry_delay: float = 0.5
    headers: dict[str, str] = DESKTOP_HEADERS
    extractor: ResultExtractor

    def __init__(
        self,
        proxy_url: str | None = None,
        *,
        page_delay: float | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.proxy_url = proxy_url or None
        self.page_delay = self.default_page_delay if page_delay is None else page_delay
        self.request_timeout = request_timeout
        self._transport = transport

    async def search(self, query: str, limit: int) -> list[SearchResult]:
        async with self.create_client() as client:
            await self.warmup(client)
            scraper = PagedScraper(
                self.name,
                lambda page: self.fetch_page(client, query, page),
                page_cap=self.page_cap,
                page_delay=self.page_delay,
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

    def create_client(self) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {
            "headers": self.headers,
            "timeout": self.request_timeout,
            "follow_redirects": True,
        }
        if self.proxy_url:
            kwargs["proxy"] = self.proxy_url
            logger.debug("{}: using proxy {}", self.name, redact_url(self.proxy_url))
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    def page_request(self, query: str, page: int) -> tuple[str, dict[str, Any]]:
        """URL and query parameters of results page ``page`` (0-based)."""
        raise NotImplementedError

    async def warmup(self, client: httpx.AsyncClient) -> None:
        """Hook run once per search before the first page."""

    async def fetch_page(self, client: httpx.AsyncClient, query: str, page: int) -> list[SearchResult]:
        url, params = self.page_request(query, page)
        try:
            body = await self.get_text(client, url, params=params)
        except ChallengeDetected as e:
            marker = e.marker
        else:
            logger.debug("{}: page {} response size {} bytes", self.name, page, len(body))
            marker = self.detect_challenge(body)
            if not marker:
                return self.extractor.extract(body)

        logger.warning("{}: challenge page detected ({}) on page {}, trying fallback", self.name, marker, page)
        try:
            fallback = await self.fallback_page(client, query, page)
        except SearchError as e:
            logger.warning("{}: fallback failed: {}", self.name, e)
            fallback = None

        if not fallback:
            raise ChallengeDetected(self.name, marker)
        return fallback

    async def fallback_page(
        self,
        client: httpx.AsyncClient,
        query: str,
        page: int,
    ) -> list[SearchResult] | None:
        """Alternate rendering path tried once when a challenge is seen."""
        return None

    async def get_text(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        """GET a page, retrying transport failures, and return its body."""
        attempts = 1 + max(0, self.transport_retries)
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await client.get(url, params=params, headers=headers)
                break
            except httpx.TransportError as e:
                if attempt >= attempts:
                    raise TransportError(self.name, f"request failed: {redact_text(str(e))}") from e
                logger.debug("{}: request failed (attempt {}/{}): {}", self.name, attempt, attempts, redact_text(str(e)))
                if self.retry_delay > 0:
                    await asyncio.sleep(self.retry_delay * attempt)
            except httpx.HTTPError as e:
                # Non-transport request errors are not retried.
                raise TransportError(self.name, f"request failed: {redact_text(str(e))}") from e

        if response.status_code == 429:
            raise ChallengeDetected(self.name, "HTTP 429")
        if response.status_code != 200:
            raise TransportError(
                self.name,
                f"unexpected status code: {response.status_code}, body: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response.text
