"""Sogou engine, scraping the WAP result list (less aggressive anti-spider)."""

from __future__ import annotations

from typing import Any

from nanosearch.engines.extract import ExtractionRules, ResultExtractor, attr, text
from nanosearch.engines.http import MOBILE_USER_AGENT, HttpSearchEngine
from nanosearch.utils.urls import host_of, query_param

SEARCH_URL = "https://wap.sogou.com/web/searchList.jsp"

HEADERS = {
    "User-Agent": MOBILE_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Referer": "https://wap.sogou.com/",
}

CHALLENGE_MARKERS = ("antispider", "验证码")

_TITLE_LINKS = (
    ".vr-tit a",
    ".title__titleText_287f",
    ".video-desc__videoTitle_812e",
    "h3 a",
    ".major-title a",
    "a.resultLink",
)

RULES = (
    ExtractionRules(
        name="vrResult",
        items=(".vrResult",),
        title=tuple(text(selector) for selector in _TITLE_LINKS),
        link=tuple(attr(selector, "href") for selector in _TITLE_LINKS),
        description=(
            text(".title-summary"),
            text(".clamp2"),
            text(".result-summary-exp"),
            text(".video-desc__descContent_812e"),
        ),
        source=(text(".citeurl span"),),
    ),
)


class SogouExtractor(ResultExtractor):
    """Sogou links are mostly relative redirects carrying the target in ``url=``."""

    def derive_source(self, url: str) -> str:
        return host_of(query_param(url, "url") or url)


class SogouEngine(HttpSearchEngine):
    name = "sogou"
    page_cap = 5
    headers = HEADERS
    challenge_markers = CHALLENGE_MARKERS
    extractor = SogouExtractor(
        "sogou",
        RULES,
        base_url=SEARCH_URL,
        internal_patterns=(
            "sogou.com/web/searchList",
            "sogou.com/link?",
            "sogou.com/tx?",
            "sogou.com/v?",
            "antispider",
        ),
        ad_keywords=("广告", "推广"),
    )

    def page_request(self, query: str, page: int) -> tuple[str, dict[str, Any]]:
        # Sogou numbers pages from 1 and omits the parameter on the first one.
        params: dict[str, Any] = {"keyword": query}
        if page > 0:
            params["page"] = page + 1
        return SEARCH_URL, params
