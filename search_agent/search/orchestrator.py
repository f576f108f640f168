"""Search orchestrator: route by type, fan out to adapters, merge, rank, truncate, enrich.

Pipeline:
  1. Validate query, type and options
  2. Cache lookup (hit -> no provider invocations)
  3. Single-flight per cache key
  4. Concurrent fan-out with one overall deadline
  5. Dedup, score, stable rank, truncate
  6. Optional enrichment (falls back to the ranked list on any error)
  7. Cache store, completed hook
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from search_agent.core.config import config
from search_agent.core.errors import AdapterTimeoutError, EnrichmentError, SearchValidationError
from search_agent.core.logger import logger
from search_agent.observability import traceable
from search_agent.providers.registry import ProviderRegistry
from search_agent.search.cache import ResultCache, make_key
from search_agent.search.constants import SearchType
from search_agent.search.enrichment import ResultEnricher
from search_agent.search.interface import SearchAdapter
from search_agent.search.models import SearchOptions, SearchOutcome, SearchResult
from search_agent.search.scoring import dedup_and_rank

CompletedHook = Callable[[str, str, int, float], Awaitable[None] | None]

# adapter names per type; ALL is the union of the others in this order
DEFAULT_ROUTES: dict[SearchType, tuple[str, ...]] = {
    SearchType.WEB: ("firecrawl", "headless"),
    SearchType.GITHUB: ("github-repo", "github-code"),
    SearchType.FILES: ("filesystem",),
    SearchType.DOCS: ("context7",),
    SearchType.CODE: ("github-code", "filesystem-code"),
}


def _failure_summary(error: BaseException) -> str:
    return f"{type(error).__name__}: {error!s}"


class SearchOrchestrator:
    """Aggregates results from every adapter routed for a search type."""

    def __init__(
        self,
        registry: ProviderRegistry,
        adapters: Iterable[SearchAdapter],
        *,
        cache: ResultCache | None = None,
        enricher: ResultEnricher | None = None,
        on_search_completed: CompletedHook | None = None,
        routes: Mapping[SearchType, Iterable[str]] | None = None,
        default_max_results: int | None = None,
        default_timeout_ms: int | None = None,
    ):
        self.registry = registry
        self.adapters: dict[str, SearchAdapter] = {a.name: a for a in adapters}
        self.cache = cache or ResultCache(ttl=config.cache_ttl, max_entries=config.cache_max_entries)
        self.enricher = enricher
        self.on_search_completed = on_search_completed
        self.default_max_results = default_max_results or config.search_max_results
        self.default_timeout_ms = default_timeout_ms or config.search_timeout_ms
        self._routes = self._build_routes(routes or DEFAULT_ROUTES)
        self._hook_tasks: set[asyncio.Future] = set()

    def _build_routes(
        self, routes: Mapping[SearchType, Iterable[str]]
    ) -> dict[SearchType, list[SearchAdapter]]:
        table: dict[SearchType, list[SearchAdapter]] = {}
        for stype, names in routes.items():
            table[SearchType(stype)] = [self.adapters[n] for n in names if n in self.adapters]
        if SearchType.ALL not in table:
            union: dict[str, SearchAdapter] = {}
            for adapters in table.values():
                for adapter in adapters:
                    union.setdefault(adapter.name, adapter)
            table[SearchType.ALL] = list(union.values())
        return table

    def resolve_adapters(self, search_type: SearchType) -> list[SearchAdapter]:
        return list(self._routes.get(search_type, []))

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def _validate(
        self,
        query: Any,
        search_type: Any,
        options: SearchOptions | Mapping[str, Any] | None,
    ) -> tuple[str, SearchType, SearchOptions]:
        if not isinstance(query, str) or not query.strip():
            raise SearchValidationError("query must be a non-empty string")
        try:
            stype = SearchType(str(search_type).strip().lower())
        except ValueError:
            allowed = ", ".join(t.value for t in SearchType)
            raise SearchValidationError(
                f"unknown search type {search_type!r} (expected one of: {allowed})"
            ) from None
        if options is None:
            opts = SearchOptions()
        elif isinstance(options, SearchOptions):
            opts = options
        else:
            try:
                opts = SearchOptions.model_validate(dict(options))
            except ValidationError as e:
                raise SearchValidationError(f"invalid search options: {e}") from e
        return query.strip(), stype, opts

    @traceable(name="search", run_type="chain")
    async def search(
        self,
        query: str,
        search_type: SearchType | str = SearchType.ALL,
        options: SearchOptions | Mapping[str, Any] | None = None,
    ) -> SearchOutcome:
        """Run one aggregated search.

        Raises SearchValidationError for an empty query, unknown type or bad
        options; every provider-level failure is reported in
        provider_failures instead.
        """
        t0 = time.monotonic()
        query, stype, opts = self._validate(query, search_type, options)
        key = make_key(query, stype, opts)

        cached, hit = self.cache.get(key)
        if hit and cached is not None:
            outcome = cached.model_copy(
                deep=True,
                update={"cached": True, "elapsed_ms": (time.monotonic() - t0) * 1000},
            )
            logger.search_completed(
                query,
                stype,
                len(outcome.results),
                outcome.elapsed_ms,
                failures=outcome.provider_failures,
                cached=True,
            )
        else:
            outcome = await self.cache.with_single_flight(
                key, lambda: self._compute(key, query, stype, opts)
            )
            # the cache keeps the computed outcome; each caller gets its own copy
            outcome = outcome.model_copy(deep=True)
        self._fire_completed(outcome)
        return outcome

    async def _compute(
        self, key: str, query: str, stype: SearchType, options: SearchOptions
    ) -> SearchOutcome:
        t0 = time.monotonic()
        logger.search_started(query, stype, key[:8])

        adapters = [a for a in self.resolve_adapters(stype) if a.is_active(self.registry)]
        max_results = options.max_results or self.default_max_results
        timeout = (options.timeout_ms or self.default_timeout_ms) / 1000
        gathered, failures = await self._fan_out(query, options, adapters, max_results, timeout)

        ranked = dedup_and_rank(gathered, query)
        results = ranked[:max_results]

        enriched = False
        if options.enrich and self.enricher is not None and results:
            try:
                results = self._check_enriched(await self.enricher.enrich(query, results), max_results)
                enriched = True
            except Exception as e:
                logger.warning(f"Enrichment failed, keeping ranked results: {e}")

        elapsed_ms = (time.monotonic() - t0) * 1000
        outcome = SearchOutcome(
            query=query,
            type=stype,
            results=results,
            total_results=len(ranked),
            elapsed_ms=elapsed_ms,
            provider_failures=failures,
            enriched=enriched,
        )
        self.cache.put(key, outcome)
        logger.search_completed(query, stype, len(results), elapsed_ms, failures=failures)
        return outcome

    @staticmethod
    def _check_enriched(results: Any, max_results: int) -> list[SearchResult]:
        if not isinstance(results, list) or not all(isinstance(r, SearchResult) for r in results):
            raise EnrichmentError("enricher must return a list of SearchResult")
        return results[:max_results]

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    @traceable(name="search_fan_out", run_type="retriever")
    async def _fan_out(
        self,
        query: str,
        options: SearchOptions,
        adapters: list[SearchAdapter],
        max_results: int,
        timeout: float,
    ) -> tuple[list[SearchResult], dict[str, str]]:
        """Run every adapter concurrently; wait for all to settle or for the deadline.

        Results are concatenated in routing order, not arrival order.
        """
        if not adapters:
            return [], {}
        tasks = {
            adapter.name: asyncio.create_task(
                adapter.search(query, options, self.registry, max_results),
                name=f"adapter:{adapter.name}",
            )
            for adapter in adapters
        }
        try:
            _, pending = await asyncio.wait(tasks.values(), timeout=timeout)
        finally:
            stragglers = [t for t in tasks.values() if not t.done()]
            for task in stragglers:
                task.cancel()
            if stragglers:
                await asyncio.gather(*stragglers, return_exceptions=True)

        results: list[SearchResult] = []
        failures: dict[str, str] = {}
        for name, task in tasks.items():
            if task in pending or task.cancelled():
                failures[name] = _failure_summary(AdapterTimeoutError(name, timeout))
            elif task.exception() is not None:
                failures[name] = _failure_summary(task.exception())
            else:
                found = task.result()
                results.extend(found)
                logger.adapter_result(name, len(found))
                continue
            logger.adapter_result(name, 0, error_reason=failures[name])
        return results, failures

    # ------------------------------------------------------------------
    # Completed hook
    # ------------------------------------------------------------------

    def _fire_completed(self, outcome: SearchOutcome) -> None:
        hook = self.on_search_completed
        if hook is None:
            return
        try:
            result = hook(outcome.query, str(outcome.type), len(outcome.results), outcome.elapsed_ms)
        except Exception:
            logger.exception("search-completed hook failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._hook_tasks.add(task)
            task.add_done_callback(self._hook_done)

    def _hook_done(self, task: asyncio.Future) -> None:
        self._hook_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"search-completed hook failed: {task.exception()}")

    async def wait_for_hooks(self) -> None:
        if self._hook_tasks:
            await asyncio.gather(*list(self._hook_tasks), return_exceptions=True)
