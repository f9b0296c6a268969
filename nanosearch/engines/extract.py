"""Declarative result extraction from search result pages.

Each engine describes its markup as data: an ordered tuple of
``ExtractionRules`` (primary selectors first, alternates after), and for every
field an ordered tuple of ``Field`` candidates. The first candidate that yields
a non-empty value wins. Changing an engine's selectors never touches the
control flow below.
"""

from __future__ import annotations

import html as html_lib
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag
from loguru import logger

from nanosearch.engines.errors import ParseError
from nanosearch.engines.models import SearchResult
from nanosearch.utils.urls import absolutize, host_of, is_http_url

MAX_DESCRIPTION_CHARS = 500
ELLIPSIS = "..."

_ANCHOR_RE = re.compile(r'<a[^>]*href="(https?://[^"]+)"[^>]*>([^<]+)</a>', re.IGNORECASE)


def clean_text(value: str | None) -> str:
    """Collapse runs of whitespace and trim."""
    if not value:
        return ""
    return " ".join(value.split())


def truncate_description(text: str, max_chars: int = MAX_DESCRIPTION_CHARS) -> str:
    """Cap description length, marking the cut with an ellipsis."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + ELLIPSIS


@dataclass(frozen=True, slots=True)
class Field:
    """One candidate location for a field value inside a result item."""

    selector: str | None = None
    attr: str | None = None

    def read(self, item: Tag) -> str:
        element = item if self.selector is None else item.select_one(self.selector)
        if element is None:
            return ""
        if self.attr:
            value = element.get(self.attr)
            if isinstance(value, list):
                value = " ".join(value)
            return clean_text(value)
        return clean_text(element.get_text())


def text(selector: str | None = None) -> Field:
    return Field(selector=selector)


def attr(selector: str | None, name: str) -> Field:
    return Field(selector=selector, attr=name)


def first_value(item: Tag, fields: Iterable[Field]) -> str:
    """Try candidates in priority order until one yields a value."""
    for candidate in fields:
        value = candidate.read(item)
        if value:
            return value
    return ""


@dataclass(frozen=True)
class ExtractionRules:
    """Selector set for one markup layout."""

    name: str
    items: tuple[str, ...]
    title: tuple[Field, ...]
    link: tuple[Field, ...]
    description: tuple[Field, ...] = ()
    source: tuple[Field, ...] = ()
    skip_nested: str | None = None


class ResultExtractor:
    """
    Turn one results page into normalized ``SearchResult`` records.

    Strategies are tried in order and the first one producing results wins.
    When none does and ``pattern_fallback`` is set, absolute anchors are
    pulled out of the raw markup as a last resort. Extraction is a pure
    function of the markup.
    """

    def __init__(
        self,
        engine: str,
        strategies: Sequence[ExtractionRules],
        *,
        base_url: str | None = None,
        internal_patterns: Sequence[str] = (),
        ad_keywords: Sequence[str] = (),
        ad_labels: Sequence[str] = (),
        dedupe: bool = False,
        pattern_fallback: bool = False,
        pattern_excluded: Sequence[str] = (),
        pattern_max_results: int = 10,
    ):
        if not strategies:
            raise ValueError("at least one extraction strategy is required")
        self.engine = engine
        self.strategies = tuple(strategies)
        self.base_url = base_url
        self.internal_patterns = tuple(internal_patterns)
        self.ad_keywords = tuple(ad_keywords)
        self.ad_labels = tuple(ad_labels)
        self.dedupe = dedupe
        self.pattern_fallback = pattern_fallback
        self.pattern_excluded = tuple(pattern_excluded)
        self.pattern_max_results = pattern_max_results

    def extract(self, markup: str) -> list[SearchResult]:
        soup = self.parse(markup)

        for rules in self.strategies:
            results = self.apply(soup, rules)
            if results:
                if rules is not self.strategies[0]:
                    logger.debug("{}: primary selectors empty, '{}' matched {} result(s)", self.engine, rules.name, len(results))
                return self._finalize(results)

        if self.pattern_fallback:
            results = self.extract_by_pattern(markup)
            if results:
                logger.debug("{}: selector passes empty, pattern extraction found {} link(s)", self.engine, len(results))
            return self._finalize(results)

        return []

    def parse(self, markup: str) -> BeautifulSoup:
        if not markup or not markup.strip():
            raise ParseError(self.engine, "empty page body")
        try:
            return BeautifulSoup(markup, "html.parser")
        except Exception as e:
            raise ParseError(self.engine, f"parse HTML failed: {e}") from e

    def apply(self, soup: BeautifulSoup, rules: ExtractionRules) -> list[SearchResult]:
        """Run one strategy; container selectors are tried until one yields results."""
        for selector in rules.items:
            results: list[SearchResult] = []
            for item in soup.select(selector):
                if rules.skip_nested and selector != rules.skip_nested and item.select_one(rules.skip_nested):
                    continue
                result = self.build_result(item, rules)
                if result is not None:
                    results.append(result)
            if results:
                return results
        return []

    def build_result(self, item: Tag, rules: ExtractionRules) -> SearchResult | None:
        title = first_value(item, rules.title)
        if not title:
            return None

        url = self.resolve_link(first_value(item, rules.link))
        if not is_http_url(url):
            return None

        if self.is_internal(url) or self.is_ad(item, title):
            return None

        description = truncate_description(first_value(item, rules.description))
        source = first_value(item, rules.source) or self.derive_source(url)

        return SearchResult(
            title=title,
            url=url,
            description=description,
            source=source,
            engine=self.engine,
        )

    def resolve_link(self, href: str) -> str:
        """Turn a raw href into the destination URL."""
        return absolutize(href, self.base_url)

    def derive_source(self, url: str) -> str:
        return host_of(url)

    def is_internal(self, url: str) -> bool:
        return any(pattern in url for pattern in self.internal_patterns)

    def is_ad(self, item: Tag, title: str) -> bool:
        if any(keyword in title for keyword in self.ad_keywords):
            return True
        return any(item.select_one(label) is not None for label in self.ad_labels)

    def extract_by_pattern(self, markup: str) -> list[SearchResult]:
        """Last-resort extraction of plain ``<a href="http...">title</a>`` anchors."""
        results: list[SearchResult] = []
        seen: set[str] = set()
        for match in _ANCHOR_RE.finditer(markup):
            url = html_lib.unescape(match.group(1))
            title = clean_text(html_lib.unescape(match.group(2)))
            if not title or url in seen or not is_http_url(url):
                continue
            if any(pattern in url for pattern in self.pattern_excluded) or self.is_internal(url):
                continue
            if any(keyword in title for keyword in self.ad_keywords):
                continue
            seen.add(url)
            results.append(
                SearchResult(
                    title=title,
                    url=url,
                    source=self.derive_source(url),
                    engine=self.engine,
                )
            )
            if len(results) >= self.pattern_max_results:
                break
        return results

    def _finalize(self, results: list[SearchResult]) -> list[SearchResult]:
        if not self.dedupe:
            return results
        return dedupe_by_url(results)


def dedupe_by_url(results: Iterable[SearchResult]) -> list[SearchResult]:
    """Keep the first result for every URL, preserving order."""
    seen: set[str] = set()
    unique: list[SearchResult] = []
    for result in results:
        if result.url in seen:
            continue
        seen.add(result.url)
        unique.append(result)
    return unique
