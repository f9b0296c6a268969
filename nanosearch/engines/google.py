"""Google, available only through the browser (plain HTTP is always challenged)."""

from __future__ import annotations

from urllib.parse import urlencode

from nanosearch.engines.browser import BrowserSearchEngine
from nanosearch.engines.extract import ExtractionRules, ResultExtractor, attr, text

SEARCH_URL = "https://www.google.com/search"
PAGE_SIZE = 10

CHALLENGE_MARKERS = ("/sorry/", "unusual traffic", "g-recaptcha", "recaptcha")

# ``div[data-ved]`` and ``div.Gx5Zad`` also match the wrappers of ``div.g``
# blocks, so those passes skip anything that contains a ``div.g``.
RULES = (
    ExtractionRules(
        name="organic",
        items=("div.g", "div[data-ved]", "div.Gx5Zad"),
        title=(text("h3"),),
        link=(attr("a[href]", "href"),),
        description=(
            text("div[data-sncf]"),
            text("div.VwiC3b"),
            text("span.aCOpRe"),
            text("div.IsZvec"),
        ),
        source=(text("cite"),),
        skip_nested="div.g",
    ),
)


class BrowserGoogleEngine(BrowserSearchEngine):
    name = "browser_google"
    wait_selector = "#search"
    challenge_markers = CHALLENGE_MARKERS
    extractor = ResultExtractor(
        "browser_google",
        RULES,
        base_url=SEARCH_URL,
        internal_patterns=("google.com", "webcache.googleusercontent.com"),
        dedupe=True,
    )

    def page_url(self, query: str, page: int) -> str:
        return f"{SEARCH_URL}?{urlencode({'q': query, 'start': page * PAGE_SIZE, 'hl': 'en'})}"
