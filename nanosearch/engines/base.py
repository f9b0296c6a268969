"""Base class for search engines."""

from __future__ import annotations

from abc import ABC, abstractmethod

from nanosearch.engines.models import EngineCapability, EngineDescriptor, SearchResult


class SearchEngine(ABC):
    """
    One pluggable search provider.

    Implementations issue network or browser traffic, so ``search`` must stay
    cancellable: every await inside it is a cancellation point and resources
    are released in ``finally`` blocks or context managers.
    """

    name: str = ""
    capability: EngineCapability = EngineCapability.HTTP_ONLY
    challenge_markers: tuple[str, ...] = ()

    def identifier(self) -> str:
        """Stable id used as registry key and stamped on every result."""
        return self.name

    @property
    def descriptor(self) -> EngineDescriptor:
        return EngineDescriptor(identifier=self.identifier(), capability=self.capability)

    @abstractmethod
    async def search(self, query: str, limit: int) -> list[SearchResult]:
        """
        Search the provider.

        Args:
            query: Non-empty query text.
            limit: Upper bound on returned results (best effort).

        Returns:
            Up to ``limit`` results. A partial list is returned without error
            when later pages fail after earlier pages produced results.

        Raises:
            SearchError: When nothing could be produced at all.
        """

    def detect_challenge(self, body: str) -> str:
        """Return the first anti-bot marker found in ``body``, or ''."""
        lowered = body.lower()
        for marker in self.challenge_markers:
            if marker.lower() in lowered:
                return marker
        return ""

    async def aclose(self) -> None:
        """Release engine-held resources. Most engines hold none."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
