"""DuckDuckGo engine (HTML endpoint, Instant Answer API as fallback)."""

from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger

from nanosearch.engines.errors import ParseError
from nanosearch.engines.extract import (
    ExtractionRules,
    ResultExtractor,
    attr,
    clean_text,
    dedupe_by_url,
    text,
    truncate_description,
)
from nanosearch.engines.http import DESKTOP_USER_AGENT, HttpSearchEngine
from nanosearch.engines.models import SearchResult
from nanosearch.utils.urls import absolutize, host_of, is_http_url, query_param

SEARCH_URL = "https://html.duckduckgo.com/html/"
INSTANT_ANSWER_URL = "https://api.duckduckgo.com/"
PAGE_SIZE = 10

HEADERS = {
    "User-Agent": DESKTOP_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

CHALLENGE_MARKERS = ("anomaly-modal", "challenge-form", "/anomaly.js")

RULES = (
    ExtractionRules(
        name="html",
        items=(".result:not(.result--ad)",),
        title=(text(".result__title"), text(".result__a")),
        link=(attr(".result__a", "href"),),
        description=(text(".result__snippet"),),
        source=(text(".result__url"),),
    ),
    ExtractionRules(
        name="links_main",
        items=(".links_main", ".web-result"),
        title=(text("a.result__a"), text("h2 a"), text("a[href]")),
        link=(attr("a.result__a", "href"), attr("h2 a", "href"), attr("a[href]", "href")),
        description=(text(".result__snippet"), text(".snippet")),
        source=(text(".result__url"),),
    ),
)


class DuckDuckGoExtractor(ResultExtractor):
    """DuckDuckGo wraps outbound links as ``//duckduckgo.com/l/?uddg=<target>``."""

    def resolve_link(self, href: str) -> str:
        href = absolutize(href, self.base_url)
        if "duckduckgo.com/l/" in href:
            return query_param(href, "uddg")
        return href


class DuckDuckGoEngine(HttpSearchEngine):
    """Scrape html.duckduckgo.com; on a challenge fall back to the Instant Answer API."""

    name = "duckduckgo"
    page_cap = 3
    headers = HEADERS
    challenge_markers = CHALLENGE_MARKERS
    extractor = DuckDuckGoExtractor(
        "duckduckgo",
        RULES,
        base_url=SEARCH_URL,
        internal_patterns=("duckduckgo.com/y.js", "duckduckgo.com/?q=", "duckduckgo.com/html"),
        ad_labels=(".badge--ad", ".result__ad"),
    )

    def page_request(self, query: str, page: int) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {"q": query}
        if page > 0:
            offset = page * PAGE_SIZE
            params["s"] = offset
            params["dc"] = offset + 1
        return SEARCH_URL, params

    async def fallback_page(
        self,
        client: httpx.AsyncClient,
        query: str,
        page: int,
    ) -> list[SearchResult] | None:
        # The Instant Answer API has no paging, so it only stands in for page 0.
        if page > 0:
            return None
        results = await self.search_instant_answer(client, query)
        logger.info("{}: instant answer fallback gave {} result(s)", self.name, len(results))
        return results

    async def search_instant_answer(self, client: httpx.AsyncClient, query: str) -> list[SearchResult]:
        body = await self.get_text(
            client,
            INSTANT_ANSWER_URL,
            params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
            headers={"Accept": "application/json"},
        )
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise ParseError(self.name, f"invalid instant answer payload: {e}") from e
        if not isinstance(payload, dict):
            raise ParseError(self.name, "invalid instant answer payload")
        return self.parse_instant_answer(payload, query)

    def parse_instant_answer(self, payload: dict[str, Any], query: str) -> list[SearchResult]:
        results: list[SearchResult] = []

        abstract_url = payload.get("AbstractURL") or ""
        abstract_text = clean_text(payload.get("AbstractText") or payload.get("Abstract"))
        if is_http_url(abstract_url) and abstract_text:
            results.append(
                SearchResult(
                    title=clean_text(payload.get("Heading")) or query,
                    url=abstract_url,
                    description=truncate_description(abstract_text),
                    source=clean_text(payload.get("AbstractSource")) or host_of(abstract_url),
                    engine=self.name,
                )
            )

        for topic in _flatten_topics(payload.get("Results")) + _flatten_topics(payload.get("RelatedTopics")):
            url = topic.get("FirstURL") or ""
            summary = clean_text(topic.get("Text"))
            if not summary or not is_http_url(url) or "duckduckgo.com" in host_of(url):
                continue
            results.append(
                SearchResult(
                    title=summary.split(" - ", 1)[0],
                    url=url,
                    description=truncate_description(summary),
                    source=host_of(url),
                    engine=self.name,
                )
            )

        return dedupe_by_url(results)


def _flatten_topics(topics: Any) -> list[dict[str, Any]]:
    if not isinstance(topics, list):
        return []
    flat: list[dict[str, Any]] = []
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        if isinstance(topic.get("Topics"), list):
            flat.extend(_flatten_topics(topic["Topics"]))
        else:
            flat.append(topic)
    return flat
