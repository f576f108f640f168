"""Standard interface for search adapters used by the orchestrator.

An adapter translates a generic query into provider-specific tool calls and
normalizes the provider's reply into SearchResult records. Adapters never
touch provider sessions directly; provider-backed adapters go through
ProviderRegistry.invoke.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from search_agent.search.constants import ResultSource
from search_agent.search.models import SearchOptions, SearchResult

if TYPE_CHECKING:
    from search_agent.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCall:
    """One provider invocation planned by an adapter."""

    provider: str
    tool: str
    arguments: dict[str, Any] = field(default_factory=dict)


def as_text(value: Any) -> str:
    """Neutral string for an absent or non-string field."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def as_number(value: Any) -> float | None:
    """Finite number or None; NaN and infinities count as malformed."""
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def as_records(value: Any) -> list[dict[str, Any]]:
    """Keep only the mapping entries of a list-shaped payload field."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class SearchAdapter(ABC):
    """Base class for all search adapters."""

    name: str
    source: ResultSource

    def is_active(self, registry: "ProviderRegistry") -> bool:
        """Whether the orchestrator should dispatch to this adapter at all."""
        return True

    @abstractmethod
    async def search(
        self,
        query: str,
        options: SearchOptions,
        registry: "ProviderRegistry",
        max_results: int,
    ) -> list[SearchResult]:
        """Run the query and return normalized, unscored results."""

    @abstractmethod
    def parse_response(self, raw: Any) -> list[SearchResult]:
        """Normalize a raw reply. Malformed fields become neutral values; never raises."""


class ProviderAdapter(SearchAdapter):
    """Adapter backed by one tool on one MCP provider."""

    provider: str
    tool: str

    @abstractmethod
    def build_request(
        self, query: str, options: SearchOptions, max_results: int
    ) -> dict[str, Any]:
        """Tool arguments for a single call."""

    def build_requests(
        self, query: str, options: SearchOptions, max_results: int
    ) -> list[ToolCall]:
        arguments = self.build_request(query, options, max_results)
        arguments.update(options.filters.get(self.name, {}))
        return [ToolCall(self.provider, self.tool, arguments)]

    async def search(
        self,
        query: str,
        options: SearchOptions,
        registry: "ProviderRegistry",
        max_results: int,
    ) -> list[SearchResult]:
        calls = self.build_requests(query, options, max_results)
        replies = await asyncio.gather(
            *(registry.invoke(c.provider, c.tool, c.arguments) for c in calls),
            return_exceptions=True,
        )
        results: list[SearchResult] = []
        errors: list[BaseException] = []
        for call, reply in zip(calls, replies):
            if isinstance(reply, BaseException):
                logger.debug("%s: %s.%s failed: %s", self.name, call.provider, call.tool, reply)
                errors.append(reply)
                continue
            results.extend(self.parse_response(reply))
        # a partially failed multi-call adapter still contributes what it got
        if errors and len(errors) == len(calls):
            raise errors[0]
        return results
