"""TTL cache of search outcomes with single-flight de-duplication of concurrent computations."""

import asyncio
import functools
import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from search_agent.search.models import SearchOptions, SearchOutcome

logger = logging.getLogger(__name__)


def make_key(query: str, search_type: str, options: SearchOptions | None = None) -> str:
    """sha256 of normalized query, type and the options that shape the result set."""
    options = options or SearchOptions()
    payload = {
        "q": " ".join(query.casefold().split()),
        "type": str(search_type),
        "max_results": options.max_results,
        "enrich": options.enrich,
        "filters": options.filters,
        "extensions": sorted(options.extensions) if options.extensions is not None else None,
    }
    raw = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    key: str
    outcome: SearchOutcome
    created_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


def _consume_exception(future: asyncio.Future) -> None:
    # callers may all have gone away; keep asyncio from logging an unretrieved exception
    if not future.cancelled():
        future.exception()


@dataclass
class _Flight:
    """A computation owned by the cache plus the number of callers still awaiting it."""

    task: asyncio.Task
    callers: int = 0


class ResultCache:
    def __init__(
        self,
        ttl: float = 3600.0,
        max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._in_flight: dict[str, _Flight] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> tuple[SearchOutcome | None, bool]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None, False
        if entry.expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None, False
        self._hits += 1
        return entry.outcome, True

    def put(self, key: str, outcome: SearchOutcome, ttl: float | None = None) -> None:
        ttl = self.ttl if ttl is None else ttl
        if ttl <= 0:
            return
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, outcome=outcome, created_at=self._clock(), ttl=ttl)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def with_single_flight(
        self, key: str, compute: Callable[[], Awaitable[SearchOutcome]]
    ) -> SearchOutcome:
        """Run compute once per key while it is in flight; concurrent callers share its result.

        The computation runs in its own task. Cancelling one caller leaves the
        others waiting; the task itself is cancelled only once no caller remains.
        """
        flight = self._in_flight.get(key)
        if flight is None:
            flight = _Flight(asyncio.create_task(compute(), name=f"search:{key[:12]}"))
            flight.task.add_done_callback(_consume_exception)
            flight.task.add_done_callback(functools.partial(self._landed, key, flight))
            self._in_flight[key] = flight
        else:
            logger.debug("Cache: joining in-flight computation %s", key[:12])

        flight.callers += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.callers -= 1
            if flight.callers == 0 and not flight.task.done():
                logger.debug("Cache: last caller left, cancelling %s", key[:12])
                flight.task.cancel()

    def _landed(self, key: str, flight: _Flight, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is flight:
            del self._in_flight[key]

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expired(now)]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._entries),
            "in_flight": len(self._in_flight),
            "hits": self._hits,
            "misses": self._misses,
            "ttl": self.ttl,
        }
