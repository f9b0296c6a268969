"""Page-by-page fetch loop shared by every engine."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from nanosearch.engines.errors import ChallengeDetected, SearchError
from nanosearch.engines.models import SearchResult

FetchPage = Callable[[int], Awaitable[list[SearchResult]]]


class StopReason(str, Enum):
    EXHAUSTED = "exhausted"
    LIMIT_REACHED = "limit_reached"
    PAGE_CAP_REACHED = "page_cap_reached"
    BLOCKED = "blocked"
    PARTIAL_ON_ERROR = "partial_on_error"


@dataclass(slots=True)
class ScrapeOutcome:
    results: list[SearchResult] = field(default_factory=list)
    stop_reason: StopReason = StopReason.EXHAUSTED
    pages_fetched: int = 0
    error: SearchError | None = None


class PagedScraper:
    """
    Drive ``fetch_page(0), fetch_page(1), ...`` until one of:

    - a page yields nothing (exhausted),
    - ``limit`` results have accumulated (truncated to exactly ``limit``),
    - ``page_cap`` pages have been fetched,
    - a page fails: with earlier results they are returned as a partial set,
      without them the error propagates.

    ``fetch_page`` raises ``ChallengeDetected`` for blocks and returns an empty
    list for natural exhaustion; the loop never guesses between the two.
    Pages are fetched strictly one after another.
    """

    def __init__(
        self,
        engine: str,
        fetch_page: FetchPage,
        *,
        page_cap: int,
        page_delay: float = 0.0,
    ):
        if page_cap < 1:
            raise ValueError("page_cap must be >= 1")
        self.engine = engine
        self.fetch_page = fetch_page
        self.page_cap = page_cap
        self.page_delay = page_delay

    async def run(self, limit: int) -> ScrapeOutcome:
        outcome = ScrapeOutcome()
        if limit <= 0:
            outcome.stop_reason = StopReason.LIMIT_REACHED
            return outcome

        page = 0
        while True:
            if len(outcome.results) >= limit:
                outcome.stop_reason = StopReason.LIMIT_REACHED
                break
            if page >= self.page_cap:
                outcome.stop_reason = StopReason.PAGE_CAP_REACHED
                break

            try:
                batch = await self.fetch_page(page)
            except SearchError as e:
                outcome.error = e
                blocked = isinstance(e, ChallengeDetected)
                if not outcome.results:
                    logger.warning("{}: page {} failed with nothing collected: {}", self.engine, page, e)
                    raise
                outcome.stop_reason = StopReason.BLOCKED if blocked else StopReason.PARTIAL_ON_ERROR
                logger.warning(
                    "{}: page {} failed, returning {} result(s) collected so far: {}",
                    self.engine,
                    page,
                    len(outcome.results),
                    e,
                )
                break

            outcome.pages_fetched += 1
            if not batch:
                logger.debug("{}: no more results at page {}, ending early", self.engine, page)
                outcome.stop_reason = StopReason.EXHAUSTED
                break

            outcome.results.extend(batch)
            page += 1
            logger.debug("{}: page {} gave {} result(s), {} total", self.engine, page - 1, len(batch), len(outcome.results))

            if self.page_delay > 0 and len(outcome.results) < limit and page < self.page_cap:
                await asyncio.sleep(self.page_delay)

        if len(outcome.results) > limit:
            del outcome.results[limit:]
        return outcome
