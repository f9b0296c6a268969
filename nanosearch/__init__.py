"""nanosearch - keyless multi-engine web search."""

__version__ = "0.1.0"

from nanosearch.config import Config, load_config
from nanosearch.coordinator import EngineRegistry, SearchCoordinator
from nanosearch.engines.models import SearchRequest, SearchResult
from nanosearch.factory import build_coordinator

__all__ = [
    "Config",
    "EngineRegistry",
    "SearchCoordinator",
    "SearchRequest",
    "SearchResult",
    "build_coordinator",
    "load_config",
]
