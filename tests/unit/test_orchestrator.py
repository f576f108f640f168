from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import MagicMock

import pytest

from search_agent.core.errors import EnrichmentError, SearchValidationError
from search_agent.providers.registry import ProviderRegistry
from search_agent.search.adapters import (
    DocsAdapter,
    FilesystemAdapter,
    GitHubCodeAdapter,
    GitHubRepoAdapter,
    HeadlessRenderAdapter,
)
from search_agent.search.cache import ResultCache
from search_agent.search.constants import SearchType
from search_agent.search.enrichment import ResultEnricher
from search_agent.search.interface import SearchAdapter
from search_agent.search.models import SearchOptions, SearchResult
from search_agent.search.orchestrator import SearchOrchestrator


class StaticAdapter(SearchAdapter):
    def __init__(
        self,
        name: str,
        titles: list[str] | None = None,
        *,
        delay: float = 0.0,
        error: Exception | None = None,
        source: str = "other",
    ):
        self.name = name
        self.source = source
        self.titles = titles or []
        self.delay = delay
        self.error = error
        self.calls = 0

    async def search(self, query, options, registry, max_results) -> list[SearchResult]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.parse_response(self.titles)

    def parse_response(self, raw: Any) -> list[SearchResult]:
        return [
            SearchResult(title=t, url=f"https://{self.name}.example/{i}", source=self.source)
            for i, t in enumerate(raw)
        ]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _orchestrator(*adapters: SearchAdapter, routes=None, **kwargs) -> SearchOrchestrator:
    registry = MagicMock(spec=ProviderRegistry)
    routes = routes or {SearchType.GITHUB: tuple(a.name for a in adapters)}
    kwargs.setdefault("cache", ResultCache(ttl=60))
    return SearchOrchestrator(registry, adapters, routes=routes, **kwargs)


@pytest.mark.asyncio
async def test_react_hooks_guide_ranks_first_through_registry(transports, provider_config):
    transports.replies["github"] = {
        "search_repositories": {
            "repositories": [
                {"full_name": "generic-lib", "html_url": "https://github.com/x/generic-lib"},
                {"full_name": "React Hooks Guide", "html_url": "https://github.com/x/guide"},
            ]
        },
        "search_code": {"items": []},
    }
    registry = ProviderRegistry(transport_factory=transports)
    await registry.connect("github", provider_config("github"))
    orchestrator = SearchOrchestrator(
        registry, [GitHubRepoAdapter(), GitHubCodeAdapter()], cache=ResultCache(ttl=60)
    )

    outcome = await orchestrator.search("react hooks", "github")

    assert [r.title for r in outcome.results] == ["React Hooks Guide", "generic-lib"]
    assert outcome.results[0].rank == 1
    assert outcome.provider_failures == {}
    tools = [name for name, _ in transports.latest("github").calls]
    assert sorted(tools) == ["search_code", "search_repositories"]
    await registry.shutdown()


@pytest.mark.asyncio
async def test_timed_out_adapter_is_recorded_and_excluded():
    fast = StaticAdapter("a", ["one", "two"])
    slow = StaticAdapter("b", ["late"], delay=5)
    orchestrator = _orchestrator(fast, slow)

    outcome = await orchestrator.search("q", "github", SearchOptions(timeout_ms=50))

    assert sorted(r.title for r in outcome.results) == ["one", "two"]
    assert list(outcome.provider_failures) == ["b"]
    assert outcome.provider_failures["b"].startswith("TimeoutError")


@pytest.mark.asyncio
async def test_max_results_keeps_only_the_best():
    adapter = StaticAdapter("a", ["alpha", "alpha beta", "alpha beta gamma"])
    orchestrator = _orchestrator(adapter)

    outcome = await orchestrator.search("alpha beta gamma", "github", SearchOptions(max_results=1))

    assert len(outcome.results) == 1
    assert outcome.results[0].title == "alpha beta gamma"
    assert outcome.results[0].score == 30
    assert outcome.total_results == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("query", "search_type", "options"),
    [
        ("", "github", None),
        ("   ", "github", None),
        (None, "github", None),
        ("q", "images", None),
        ("q", "github", {"max_results": 0}),
    ],
)
async def test_invalid_requests_fail_without_invoking_adapters(query, search_type, options):
    adapter = StaticAdapter("a", ["x"])
    orchestrator = _orchestrator(adapter)

    with pytest.raises(SearchValidationError):
        await orchestrator.search(query, search_type, options)
    assert adapter.calls == 0


@pytest.mark.asyncio
async def test_zero_connected_providers_returns_empty_success():
    registry = ProviderRegistry()
    orchestrator = SearchOrchestrator(
        registry,
        [
            GitHubRepoAdapter(),
            GitHubCodeAdapter(),
            FilesystemAdapter(["./data"]),
            DocsAdapter(),
            HeadlessRenderAdapter("http://localhost:8191", enabled=False),
        ],
        cache=ResultCache(ttl=60),
    )

    outcome = await orchestrator.search("react hooks", "all")

    assert outcome.results == []
    assert outcome.total_results == 0
    assert set(outcome.provider_failures) == {"github-repo", "github-code", "filesystem", "context7"}
    assert all("ProviderNotConnected" in v for v in outcome.provider_failures.values())


@pytest.mark.asyncio
async def test_every_adapter_failing_is_still_a_successful_outcome():
    orchestrator = _orchestrator(
        StaticAdapter("a", error=RuntimeError("boom")),
        StaticAdapter("b", error=ValueError("bad payload")),
    )

    outcome = await orchestrator.search("q", "github")

    assert outcome.results == []
    assert outcome.provider_failures == {"a": "RuntimeError: boom", "b": "ValueError: bad payload"}


@pytest.mark.asyncio
async def test_cache_hit_skips_fan_out_until_ttl_expires():
    clock = FakeClock()
    adapter = StaticAdapter("a", ["hit"])
    orchestrator = _orchestrator(adapter, cache=ResultCache(ttl=60, clock=clock))

    first = await orchestrator.search("react", "github")
    second = await orchestrator.search("  REACT ", "github")

    assert adapter.calls == 1
    assert not first.cached
    assert second.cached
    assert second.results == first.results

    clock.now += 61
    third = await orchestrator.search("react", "github")
    assert adapter.calls == 2
    assert not third.cached


@pytest.mark.asyncio
async def test_concurrent_identical_searches_fan_out_once():
    adapter = StaticAdapter("a", ["shared"], delay=0.05)
    orchestrator = _orchestrator(adapter)

    outcomes = await asyncio.gather(*(orchestrator.search("react", "github") for _ in range(8)))

    assert adapter.calls == 1
    assert {o.results[0].title for o in outcomes} == {"shared"}


@pytest.mark.asyncio
async def test_cancelling_first_caller_does_not_cancel_joined_search():
    adapter = StaticAdapter("a", ["shared"], delay=0.1)
    orchestrator = _orchestrator(adapter)

    first = asyncio.create_task(orchestrator.search("react", "github"))
    await asyncio.sleep(0.01)
    second = asyncio.create_task(orchestrator.search("react", "github"))
    await asyncio.sleep(0.01)
    first.cancel()

    outcome = await asyncio.wait_for(second, timeout=1.0)

    assert first.cancelled()
    assert [r.title for r in outcome.results] == ["shared"]
    assert adapter.calls == 1


@pytest.mark.asyncio
async def test_callers_cannot_mutate_the_cached_outcome():
    orchestrator = _orchestrator(StaticAdapter("a", ["x", "y"]))

    fresh = await orchestrator.search("x", "github")
    fresh.results.clear()
    hit = await orchestrator.search("x", "github")
    hit.results[0].title = "changed"
    again = await orchestrator.search("x", "github")

    assert hit.cached
    assert [r.title for r in again.results] == ["x", "y"]


@pytest.mark.asyncio
async def test_results_follow_routing_order_not_arrival_order():
    late = StaticAdapter("a", ["same"], delay=0.03)
    early = StaticAdapter("b", ["same"])
    orchestrator = _orchestrator(late, early)

    outcome = await orchestrator.search("same", "github")

    assert [r.url for r in outcome.results] == ["https://a.example/0", "https://b.example/0"]


@pytest.mark.asyncio
async def test_all_type_dedups_adapters_by_identity():
    shared = StaticAdapter("shared", ["x"])
    other = StaticAdapter("other", ["y"])
    orchestrator = _orchestrator(
        shared,
        other,
        routes={SearchType.GITHUB: ("shared",), SearchType.CODE: ("shared", "other")},
    )

    assert [a.name for a in orchestrator.resolve_adapters(SearchType.ALL)] == ["shared", "other"]
    await orchestrator.search("x", "all")
    assert shared.calls == 1


class _TaggingEnricher(ResultEnricher):
    async def enrich(self, query, results):
        return [r.model_copy(update={"enrichment": {"relevance": 9.0}}) for r in results]


class _BrokenEnricher(ResultEnricher):
    async def enrich(self, query, results):
        raise EnrichmentError("model returned prose")


@pytest.mark.asyncio
async def test_enrichment_replaces_results_when_requested():
    orchestrator = _orchestrator(StaticAdapter("a", ["x"]), enricher=_TaggingEnricher())

    plain = await orchestrator.search("x", "github")
    enriched = await orchestrator.search("x", "github", {"enrich": True})

    assert plain.results[0].enrichment is None
    assert enriched.enriched
    assert enriched.results[0].enrichment == {"relevance": 9.0}


@pytest.mark.asyncio
async def test_enrichment_failure_falls_back_to_ranked_list():
    orchestrator = _orchestrator(StaticAdapter("a", ["x", "y"]), enricher=_BrokenEnricher())

    outcome = await orchestrator.search("x", "github", SearchOptions(enrich=True))

    assert not outcome.enriched
    assert [r.title for r in outcome.results] == ["x", "y"]
    assert outcome.provider_failures == {}


@pytest.mark.asyncio
async def test_completed_hook_fires_for_fresh_and_cached_searches():
    calls: list[tuple] = []
    orchestrator = _orchestrator(
        StaticAdapter("a", ["x"]),
        on_search_completed=lambda *args: calls.append(args),
    )

    await orchestrator.search("x", "github")
    await orchestrator.search("x", "github")

    assert [c[:3] for c in calls] == [("x", "github", 1), ("x", "github", 1)]
    assert all(isinstance(c[3], float) for c in calls)


@pytest.mark.asyncio
async def test_failing_async_hook_never_breaks_search():
    async def hook(*args):
        raise RuntimeError("database down")

    orchestrator = _orchestrator(StaticAdapter("a", ["x"]), on_search_completed=hook)

    outcome = await orchestrator.search("x", "github")
    await orchestrator.wait_for_hooks()

    assert len(outcome.results) == 1
