"""Bing engine and the extractor shared with the browser-driven variant."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from urllib.parse import urlencode

from nanosearch.engines.browser import BrowserSearchEngine
from nanosearch.engines.extract import ExtractionRules, ResultExtractor, attr, text
from nanosearch.engines.http import HttpSearchEngine
from nanosearch.utils.urls import absolutize, decode_base64_url, query_param

SEARCH_URL = "https://www.bing.com/search"
PAGE_SIZE = 10

CHALLENGE_MARKERS = ("/challenge/verify", "b_captcha", "/turing/captcha")

INTERNAL_PATTERNS = (
    "bing.com/search?",
    "bing.com/ck/a",
    "bing.com/aclk",
    "bing.com/images/",
    "bing.com/videos/",
)

_DESCRIPTION = (text(".b_caption p"), text("p"), text(".b_algoSlug"))

RULES = (
    ExtractionRules(
        name="b_algo",
        items=("li.b_algo", "#b_results > li.b_algo", ".b_algo"),
        title=(text("h2"),),
        link=(attr("h2 a", "href"),),
        description=_DESCRIPTION,
        source=(text("cite"),),
    ),
)


def page_params(query: str, page: int) -> dict[str, Any]:
    return {"q": query, "first": 1 + page * PAGE_SIZE, "setlang": "en"}


class BingExtractor(ResultExtractor):
    """
    Bing result extractor.

    Tracking links look like ``https://www.bing.com/ck/a?...&u=a1<base64url>``;
    the destination is recovered from ``u``. When no ``b_algo`` block
    matches, plain anchors are pulled out of the markup, skipping Bing and
    Microsoft properties.
    """

    def __init__(self, engine: str = "bing", *, internal_patterns: Sequence[str] = INTERNAL_PATTERNS):
        super().__init__(
            engine,
            RULES,
            base_url=SEARCH_URL,
            internal_patterns=internal_patterns,
            ad_labels=(".b_adSlug", ".b_adProvider"),
            pattern_fallback=True,
            pattern_excluded=("bing.com", "microsoft.com"),
        )

    def resolve_link(self, href: str) -> str:
        href = absolutize(href, self.base_url)
        if "bing.com/ck/a" not in href:
            return href
        encoded = query_param(href, "u")
        if encoded.startswith("a1"):
            decoded = decode_base64_url(encoded[2:])
            if decoded:
                return decoded
        return href


class BingEngine(HttpSearchEngine):
    name = "bing"
    page_cap = 5
    challenge_markers = CHALLENGE_MARKERS
    extractor = BingExtractor()

    def page_request(self, query: str, page: int) -> tuple[str, dict[str, Any]]:
        return SEARCH_URL, page_params(query, page)


class BrowserBingEngine(BrowserSearchEngine):
    name = "browser_bing"
    wait_selector = "#b_results"
    challenge_markers = CHALLENGE_MARKERS
    extractor = BingExtractor(
        "browser_bing",
        internal_patterns=("bing.com", "microsoft.com"),
    )

    def page_url(self, query: str, page: int) -> str:
        return f"{SEARCH_URL}?{urlencode(page_params(query, page))}"
