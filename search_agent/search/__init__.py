"""Aggregated search: adapters, ranking, result cache and the orchestrator."""

from search_agent.search.cache import ResultCache
from search_agent.search.constants import SearchType
from search_agent.search.interface import SearchAdapter
from search_agent.search.models import SearchOptions, SearchOutcome, SearchResult
from search_agent.search.orchestrator import SearchOrchestrator

__all__ = [
    "ResultCache",
    "SearchAdapter",
    "SearchOptions",
    "SearchOrchestrator",
    "SearchOutcome",
    "SearchResult",
    "SearchType",
]
