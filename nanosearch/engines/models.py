"""Shared search models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

DEFAULT_LIMIT = 10


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Normalized search result item."""

    title: str
    url: str
    description: str = ""
    source: str = ""
    engine: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class SearchRequest:
    """One caller query, fanned out to one or more engines."""

    query: str
    limit: int = DEFAULT_LIMIT
    engines: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any iterable of identifiers, store an immutable tuple.
        object.__setattr__(self, "engines", tuple(self.engines or ()))

    @property
    def effective_limit(self) -> int:
        return self.limit if self.limit and self.limit > 0 else DEFAULT_LIMIT

    def normalized(self) -> "SearchRequest":
        """Strip the query, default the limit and drop repeated engine ids."""
        engines: list[str] = []
        for name in self.engines:
            key = (name or "").strip().lower()
            if key and key not in engines:
                engines.append(key)
        return SearchRequest(
            query=(self.query or "").strip(),
            limit=self.effective_limit,
            engines=tuple(engines),
        )


class EngineCapability(str, Enum):
    """How an engine reaches its provider."""

    HTTP_ONLY = "http"
    BROWSER_DRIVEN = "browser"


@dataclass(frozen=True, slots=True)
class EngineDescriptor:
    identifier: str
    capability: EngineCapability
