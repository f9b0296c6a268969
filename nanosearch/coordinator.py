"""Fan one search request out to several engines and merge what comes back."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

from loguru import logger

from nanosearch.engines.base import SearchEngine
from nanosearch.engines.errors import AllEnginesFailed, EngineNotAvailable, SearchError
from nanosearch.engines.models import EngineDescriptor, SearchRequest, SearchResult

if TYPE_CHECKING:
    from nanosearch.browser.manager import BrowserSessionManager
    from nanosearch.config.schema import SearchConfig


class EngineRegistry:
    """Engines keyed by identifier. Safe for concurrent register and lookup."""

    def __init__(self) -> None:
        self._engines: dict[str, SearchEngine] = {}
        self._lock = threading.RLock()

    def register(self, engine: SearchEngine) -> None:
        key = engine.identifier()
        if not key:
            raise ValueError(f"{engine!r} has no identifier")
        with self._lock:
            if key in self._engines:
                logger.warning("Engine {} registered twice, replacing previous instance", key)
            self._engines[key] = engine

    def get(self, name: str) -> SearchEngine | None:
        with self._lock:
            return self._engines.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._engines)

    def engines(self) -> list[SearchEngine]:
        with self._lock:
            return list(self._engines.values())

    def descriptors(self) -> list[EngineDescriptor]:
        return [engine.descriptor for engine in self.engines()]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._engines

    def __len__(self) -> int:
        with self._lock:
            return len(self._engines)


class SearchCoordinator:
    """
    Run one request against every selected engine concurrently.

    Engines fail independently: the caller gets the combined results when
    any engine produced some, ``AllEnginesFailed`` when none did and at
    least one failed, and an empty list when no engine could be selected.
    """

    def __init__(
        self,
        registry: EngineRegistry,
        config: SearchConfig | None = None,
        *,
        browser: BrowserSessionManager | None = None,
    ):
        from nanosearch.config.schema import SearchConfig

        self.registry = registry
        self.config = config or SearchConfig()
        self.browser = browser

    def engine_names(self) -> list[str]:
        """Registered engines the allow-list permits."""
        return [name for name in self.registry.names() if self.config.is_engine_allowed(name)]

    def resolve(self, request: SearchRequest) -> list[SearchEngine]:
        """Map requested identifiers to engines, skipping rejected ones."""
        names = request.engines or (self.config.default_engine,)
        selected: list[SearchEngine] = []
        for name in names:
            try:
                selected.append(self._lookup(name))
            except EngineNotAvailable as e:
                logger.info("Skipping search engine: {}", e)
        return selected

    def _lookup(self, name: str) -> SearchEngine:
        if not self.config.is_engine_allowed(name):
            raise EngineNotAvailable(name, "is not in allowedEngines")
        engine = self.registry.get(name)
        if engine is None:
            raise EngineNotAvailable(name, "is not registered")
        return engine

    async def search(self, request: SearchRequest) -> list[SearchResult]:
        request = request.normalized()
        if not request.query:
            raise ValueError("query must not be empty")

        engines = self.resolve(request)
        if not engines:
            logger.warning("No usable search engine for {}", list(request.engines) or [self.config.default_engine])
            return []

        logger.info(
            "Searching '{}' on {} (limit {})",
            request.query,
            ", ".join(engine.identifier() for engine in engines),
            request.limit,
        )

        # Cancelling this call cancels every engine task through gather.
        outcomes = await asyncio.gather(
            *(self._run_engine(engine, request.query, request.limit) for engine in engines),
            return_exceptions=True,
        )

        combined: list[SearchResult] = []
        errors: dict[str, Exception] = {}
        for engine, outcome in zip(engines, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                continue
            if isinstance(outcome, Exception):
                errors[engine.identifier()] = outcome
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            combined.extend(outcome)

        if combined:
            if errors:
                logger.info("{} engine(s) failed, returning {} result(s) from the rest", len(errors), len(combined))
            return combined

        if errors:
            last = list(errors.values())[-1]
            raise AllEnginesFailed(errors) from last
        return []

    async def _run_engine(self, engine: SearchEngine, query: str, limit: int) -> list[SearchResult]:
        name = engine.identifier()
        try:
            results = await engine.search(query, limit)
        except SearchError as e:
            logger.warning("Search engine {} failed: {}", name, e)
            raise
        except asyncio.CancelledError:
            logger.debug("Search engine {} cancelled", name)
            raise
        except Exception:
            logger.exception("Search engine {} crashed", name)
            raise

        logger.info("Search engine {} returned {} result(s)", name, len(results))
        return results[:limit]

    async def aclose(self) -> None:
        """Release engine resources and shut the shared browser down."""
        for engine in self.registry.engines():
            await engine.aclose()
        if self.browser is not None:
            await self.browser.shutdown()

    async def __aenter__(self) -> SearchCoordinator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
