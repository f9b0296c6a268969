import asyncio

import httpx
import pytest

from nanosearch.config.schema import SearchConfig
from nanosearch.coordinator import EngineRegistry, SearchCoordinator
from nanosearch.engines.baidu import BaiduEngine
from nanosearch.engines.base import SearchEngine
from nanosearch.engines.bing import BingEngine
from nanosearch.engines.errors import AllEnginesFailed, ChallengeDetected, TransportError
from nanosearch.engines.models import EngineCapability, SearchRequest, SearchResult


class FakeEngine(SearchEngine):
    def __init__(self, name: str, results=None, error: BaseException | None = None, delay: float = 0.0):
        self.name = name
        self.results = results if results is not None else [
            SearchResult(title=f"{name} {i}", url=f"https://{name}.example/{i}", engine=name) for i in range(3)
        ]
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, int]] = []
        self.cancelled = False
        self.closed = False

    async def search(self, query: str, limit: int) -> list[SearchResult]:
        self.calls.append((query, limit))
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def aclose(self) -> None:
        self.closed = True


def _coordinator(*engines: SearchEngine, **config) -> SearchCoordinator:
    registry = EngineRegistry()
    for engine in engines:
        registry.register(engine)
    return SearchCoordinator(registry, SearchConfig(**config))


@pytest.mark.asyncio
async def test_default_engine_used_when_none_requested() -> None:
    ddg, bing = FakeEngine("duckduckgo"), FakeEngine("bing")
    coordinator = _coordinator(ddg, bing, default_engine="duckduckgo")

    results = await coordinator.search(SearchRequest(query="  golang  "))

    assert len(results) == 3
    assert ddg.calls == [("golang", 10)]
    assert bing.calls == []


@pytest.mark.asyncio
async def test_engines_are_normalized_and_deduplicated() -> None:
    bing = FakeEngine("bing")
    coordinator = _coordinator(bing)

    await coordinator.search(SearchRequest(query="golang", limit=5, engines=("Bing", " bing ", "")))

    assert bing.calls == [("golang", 5)]


@pytest.mark.asyncio
async def test_results_are_combined_in_request_order() -> None:
    ddg, bing = FakeEngine("duckduckgo", delay=0.02), FakeEngine("bing")
    coordinator = _coordinator(ddg, bing)

    results = await coordinator.search(SearchRequest(query="golang", engines=("duckduckgo", "bing")))

    assert [r.engine for r in results] == ["duckduckgo"] * 3 + ["bing"] * 3


@pytest.mark.asyncio
async def test_disallowed_and_unknown_engines_are_skipped() -> None:
    ddg, bing = FakeEngine("duckduckgo"), FakeEngine("bing")
    coordinator = _coordinator(ddg, bing, allowed_engines=["duckduckgo"])

    results = await coordinator.search(SearchRequest(query="golang", engines=("bing", "duckduckgo", "altavista")))

    assert {r.engine for r in results} == {"duckduckgo"}
    assert bing.calls == []
    assert coordinator.engine_names() == ["duckduckgo"]


@pytest.mark.asyncio
async def test_no_usable_engine_yields_empty_list() -> None:
    bing = FakeEngine("bing")
    coordinator = _coordinator(bing, allowed_engines=["duckduckgo"], default_engine="duckduckgo")

    assert await coordinator.search(SearchRequest(query="golang", engines=("bing",))) == []
    assert await coordinator.search(SearchRequest(query="golang")) == []
    assert bing.calls == []


@pytest.mark.asyncio
async def test_empty_query_is_rejected() -> None:
    coordinator = _coordinator(FakeEngine("duckduckgo"))

    with pytest.raises(ValueError):
        await coordinator.search(SearchRequest(query="   "))


@pytest.mark.asyncio
async def test_partial_failure_returns_surviving_results() -> None:
    ok = FakeEngine("bing")
    broken = FakeEngine("baidu", error=ChallengeDetected("baidu", "wappass.baidu.com"))
    coordinator = _coordinator(ok, broken)

    results = await coordinator.search(SearchRequest(query="golang", engines=("baidu", "bing")))

    assert [r.engine for r in results] == ["bing"] * 3


@pytest.mark.asyncio
async def test_unexpected_engine_crash_is_isolated() -> None:
    ok = FakeEngine("bing")
    crashed = FakeEngine("sogou", error=KeyError("title"))
    coordinator = _coordinator(ok, crashed)

    results = await coordinator.search(SearchRequest(query="golang", engines=("sogou", "bing")))

    assert len(results) == 3


@pytest.mark.asyncio
async def test_all_failures_raise_with_every_error() -> None:
    first = FakeEngine("bing", error=TransportError("bing", "request failed: refused"))
    second = FakeEngine("baidu", error=ChallengeDetected("baidu", "captcha"))
    coordinator = _coordinator(first, second)

    with pytest.raises(AllEnginesFailed) as exc_info:
        await coordinator.search(SearchRequest(query="golang", engines=("bing", "baidu")))

    assert set(exc_info.value.errors) == {"bing", "baidu"}
    assert "rate limited" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, ChallengeDetected)


@pytest.mark.asyncio
async def test_engines_returning_nothing_is_not_a_failure() -> None:
    coordinator = _coordinator(FakeEngine("bing", results=[]))

    assert await coordinator.search(SearchRequest(query="golang", engines=("bing",))) == []


@pytest.mark.asyncio
async def test_each_engine_is_truncated_to_limit() -> None:
    many = [SearchResult(title=str(i), url=f"https://x.example/{i}", engine="bing") for i in range(25)]
    coordinator = _coordinator(FakeEngine("bing", results=many))

    results = await coordinator.search(SearchRequest(query="golang", limit=7, engines=("bing",)))

    assert len(results) == 7


@pytest.mark.asyncio
async def test_cancelling_search_cancels_engines() -> None:
    slow = [FakeEngine("bing", delay=10), FakeEngine("baidu", delay=10)]
    coordinator = _coordinator(*slow)

    task = asyncio.create_task(coordinator.search(SearchRequest(query="golang", engines=("bing", "baidu"))))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert all(engine.cancelled for engine in slow)


@pytest.mark.asyncio
async def test_engine_cancelled_on_its_own_is_ignored() -> None:
    ok = FakeEngine("bing")
    cancelled = FakeEngine("baidu", error=asyncio.CancelledError())
    coordinator = _coordinator(ok, cancelled)

    results = await coordinator.search(SearchRequest(query="golang", engines=("baidu", "bing")))

    assert len(results) == 3


@pytest.mark.asyncio
async def test_aclose_closes_engines_and_context_manager() -> None:
    engine = FakeEngine("bing")

    async with _coordinator(engine) as coordinator:
        await coordinator.search(SearchRequest(query="golang", engines=("bing",)))

    assert engine.closed


BING_PAGE = """
<html><body><ol id="b_results">
  <li class="b_algo"><h2><a href="https://go.dev/">The Go Programming Language</a></h2></li>
  <li class="b_algo"><h2><a href="https://go.dev/doc/">Documentation</a></h2></li>
</ol></body></html>
"""
CHALLENGE_PAGE = '<html><script src="https://wappass.baidu.com/static/captcha/tuxing.js"></script></html>'


def _http_coordinator(handler) -> SearchCoordinator:
    transport = httpx.MockTransport(handler)
    registry = EngineRegistry()
    registry.register(BingEngine(transport=transport, page_delay=0))
    registry.register(BaiduEngine(transport=transport, page_delay=0))
    return SearchCoordinator(registry)


@pytest.mark.asyncio
async def test_challenged_engine_does_not_hide_other_results() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.bing.com":
            if request.url.params["first"] == "1":
                return httpx.Response(200, text=BING_PAGE)
            return httpx.Response(200, text='<ol id="b_results"></ol>')
        return httpx.Response(200, text=CHALLENGE_PAGE)

    results = await _http_coordinator(handler).search(SearchRequest(query="golang", engines=("bing", "baidu")))

    assert [(r.engine, r.url) for r in results] == [("bing", "https://go.dev/"), ("bing", "https://go.dev/doc/")]


@pytest.mark.asyncio
async def test_every_engine_challenged_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.bing.com":
            return httpx.Response(200, text='<div id="b_captcha_form"></div>')
        return httpx.Response(200, text=CHALLENGE_PAGE)

    with pytest.raises(AllEnginesFailed) as exc_info:
        await _http_coordinator(handler).search(SearchRequest(query="golang", engines=("bing", "baidu")))

    assert all(isinstance(e, ChallengeDetected) for e in exc_info.value.errors.values())


def test_registry_lookup_and_replacement() -> None:
    registry = EngineRegistry()
    first, second = FakeEngine("bing"), FakeEngine("bing")
    registry.register(first)
    registry.register(FakeEngine("baidu"))
    registry.register(second)

    assert registry.get("bing") is second
    assert registry.get("google") is None
    assert "baidu" in registry
    assert len(registry) == 2
    assert registry.names() == ["bing", "baidu"]
    assert [d.capability for d in registry.descriptors()] == [EngineCapability.HTTP_ONLY] * 2


def test_registry_rejects_nameless_engine() -> None:
    with pytest.raises(ValueError):
        EngineRegistry().register(FakeEngine(""))
