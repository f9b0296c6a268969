"""Baidu engine: desktop results with a mobile-site fallback on verification pages."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import httpx
from loguru import logger

from nanosearch.engines.browser import BrowserSearchEngine
from nanosearch.engines.errors import ChallengeDetected
from nanosearch.engines.extract import ExtractionRules, ResultExtractor, attr, text
from nanosearch.engines.http import DESKTOP_USER_AGENT, MOBILE_USER_AGENT, HttpSearchEngine
from nanosearch.engines.models import SearchResult

HOME_URL = "https://www.baidu.com/"
SEARCH_URL = "https://www.baidu.com/s"
MOBILE_SEARCH_URL = "https://m.baidu.com/s"
PAGE_SIZE = 10

HEADERS = {
    "User-Agent": DESKTOP_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}

MOBILE_HEADERS = {
    "User-Agent": MOBILE_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9",
}

CHALLENGE_MARKERS = ("wappass.baidu.com", "captcha", "百度安全验证", "安全验证")

# Related searches and paid placements.
INTERNAL_PATTERNS = ("baidu.com/s?", "baidu.com/baidu.php")
AD_KEYWORDS = ("广告", "推广", "想在此推广")

DESKTOP_RULES = (
    ExtractionRules(
        name="content_left",
        items=("#content_left > *",),
        title=(text("h3"),),
        link=(attr("h3 a", "href"), attr("a", "href")),
        description=(
            attr(".c-font-normal.c-color-text", "aria-label"),
            text(".cos-row"),
            text(".c-abstract"),
        ),
        source=(text(".cosc-source"),),
    ),
)

MOBILE_RULES = (
    ExtractionRules(
        name="mobile",
        items=(".c-result, .result, [data-log]",),
        title=(text(".c-title"), text(".c-title-text"), text("h3")),
        link=(attr("a", "href"),),
        description=(text(".c-abstract"), text(".c-span-last"), text(".c-line-clamp2")),
        source=(text(".c-showurl"), text(".c-color-source")),
    ),
)

DESKTOP_EXTRACTOR = ResultExtractor(
    "baidu",
    DESKTOP_RULES,
    base_url=HOME_URL,
    internal_patterns=INTERNAL_PATTERNS,
    ad_keywords=AD_KEYWORDS,
)

# ``[data-log]`` also matches wrappers around ``.c-result`` blocks.
MOBILE_EXTRACTOR = ResultExtractor(
    "baidu",
    MOBILE_RULES,
    base_url="https://m.baidu.com/",
    internal_patterns=INTERNAL_PATTERNS,
    ad_keywords=AD_KEYWORDS,
    dedupe=True,
)


class BaiduEngine(HttpSearchEngine):
    """
    Baidu web search.

    The homepage is visited first so the cookie jar holds ``BAIDUID`` before
    the first query. A verification page on the desktop site triggers one
    attempt at the same page on ``m.baidu.com``.
    """

    name = "baidu"
    page_cap = 5
    default_page_delay = 0.5
    headers = HEADERS
    challenge_markers = CHALLENGE_MARKERS
    extractor = DESKTOP_EXTRACTOR
    mobile_extractor = MOBILE_EXTRACTOR

    def page_request(self, query: str, page: int) -> tuple[str, dict[str, Any]]:
        return SEARCH_URL, {
            "wd": query,
            "pn": page * PAGE_SIZE,
            "ie": "utf-8",
            "oq": query,
            "bs": query,
            "rsv_idx": 1,
        }

    async def warmup(self, client: httpx.AsyncClient) -> None:
        try:
            response = await client.get(HOME_URL)
        except httpx.HTTPError as e:
            logger.warning("{}: warmup failed: {}", self.name, e)
            return
        logger.debug("{}: warmup completed ({}), {} cookie(s)", self.name, response.status_code, len(client.cookies))

    async def fallback_page(
        self,
        client: httpx.AsyncClient,
        query: str,
        page: int,
    ) -> list[SearchResult] | None:
        body = await self.get_text(
            client,
            MOBILE_SEARCH_URL,
            params={"word": query, "pn": page * PAGE_SIZE},
            headers=MOBILE_HEADERS,
        )
        logger.debug("{}: mobile response size {} bytes", self.name, len(body))

        marker = self.detect_challenge(body)
        if marker:
            raise ChallengeDetected(self.name, f"mobile {marker}")

        results = self.mobile_extractor.extract(body)
        logger.info("{}: mobile fallback gave {} result(s) on page {}", self.name, len(results), page)
        return results


BROWSER_RULES = (
    ExtractionRules(
        name="rendered",
        items=("div.result, div.result-op, div.c-container",),
        title=(text("h3 a"), text("a[href]")),
        link=(attr("h3 a", "href"), attr("a[href]", "href")),
        description=(
            text("div.c-abstract"),
            text("span.c-abstract"),
            text("div.c-span-last"),
            text("div.content-right_8Zs40"),
        ),
        source=(text("span.c-showurl"), text("a.c-showurl"), text("span.source_1Vdff")),
    ),
)


class BrowserBaiduEngine(BrowserSearchEngine):
    name = "browser_baidu"
    wait_selector = "#content_left"
    challenge_markers = CHALLENGE_MARKERS
    extractor = ResultExtractor(
        "browser_baidu",
        BROWSER_RULES,
        base_url=HOME_URL,
        internal_patterns=INTERNAL_PATTERNS,
        ad_keywords=AD_KEYWORDS,
        dedupe=True,
    )

    def page_url(self, query: str, page: int) -> str:
        return f"{SEARCH_URL}?{urlencode({'wd': query, 'pn': page * PAGE_SIZE})}"
