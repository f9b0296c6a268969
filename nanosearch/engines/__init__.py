"""Search engines and the contract they implement."""

from nanosearch.engines.base import SearchEngine
from nanosearch.engines.errors import (
    AllEnginesFailed,
    ChallengeDetected,
    EngineNotAvailable,
    ParseError,
    ResourceUnavailable,
    SearchError,
    TransportError,
)
from nanosearch.engines.models import EngineCapability, EngineDescriptor, SearchRequest, SearchResult

__all__ = [
    "SearchEngine",
    "SearchRequest",
    "SearchResult",
    "EngineCapability",
    "EngineDescriptor",
    "SearchError",
    "TransportError",
    "ChallengeDetected",
    "ParseError",
    "ResourceUnavailable",
    "EngineNotAvailable",
    "AllEnginesFailed",
]
