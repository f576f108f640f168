"""LLM enrichment of ranked results: relevance, improved summary, tags and usage hints.

Best effort. The orchestrator keeps the un-enriched list when an enricher raises.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Protocol

from search_agent.core.errors import EnrichmentError
from search_agent.core.logger import logger
from search_agent.observability import traceable
from search_agent.search.models import SearchResult

ENRICH_PROMPT = """You are ranking search results for the query: "{query}"

For each result below, return:
- "index": the result number as given
- "relevance": integer 0-10, how well the result answers the query
- "summary": one or two sentences, better than the snippet
- "tags": up to 5 short keyword tags
- "usage": one sentence on how the result could be used

Results:
{results}

Return only a JSON array with one object per result."""

_MAX_SNIPPET_CHARS = 300


class CompletionClient(Protocol):
    async def generate(self, prompt: str, max_tokens: int = 1024, temperature: float = 0.2) -> Any: ...


def _extract_json(text: str) -> str:
    """Take first ```json ... ``` block or bare JSON from text."""
    text = (text or "").strip()
    if not text:
        return "[]"
    match = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    if match:
        return match.group(1).strip()
    return text


def _parse_json_array(text: str) -> list[Any]:
    cleaned = _extract_json(text)
    cleaned = re.sub(r",\s*}", "}", cleaned)
    cleaned = re.sub(r",\s*]", "]", cleaned)
    try:
        out = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as e:
        raise EnrichmentError(f"enricher returned invalid JSON: {e}") from e
    if isinstance(out, dict) and isinstance(out.get("results"), list):
        out = out["results"]
    if not isinstance(out, list):
        raise EnrichmentError(f"enricher returned {type(out).__name__}, expected a list")
    return out


def _coerce_annotation(entry: dict[str, Any]) -> dict[str, Any]:
    relevance = entry.get("relevance")
    if isinstance(relevance, (int, float)) and not isinstance(relevance, bool):
        relevance = max(0.0, min(float(relevance), 10.0))
    else:
        relevance = None
    tags = entry.get("tags")
    return {
        "relevance": relevance,
        "summary": str(entry.get("summary") or "").strip(),
        "tags": [str(t) for t in tags][:5] if isinstance(tags, list) else [],
        "usage": str(entry.get("usage") or "").strip(),
    }


class ResultEnricher(ABC):
    @abstractmethod
    async def enrich(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        """Return annotated copies in the same order. Raise EnrichmentError on bad output."""


class LLMResultEnricher(ResultEnricher):
    def __init__(self, client: CompletionClient, max_tokens: int = 4000):
        self.client = client
        self.max_tokens = max_tokens

    def build_prompt(self, query: str, results: list[SearchResult]) -> str:
        lines = []
        for i, r in enumerate(results):
            snippet = r.snippet[:_MAX_SNIPPET_CHARS]
            lines.append(f"[{i}] ({r.source}) {r.title}\n    {r.url}\n    {snippet}")
        return ENRICH_PROMPT.format(query=query, results="\n".join(lines))

    @traceable(name="enrich_results", run_type="llm")
    async def enrich(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        if not results:
            return []
        try:
            response = await self.client.generate(
                self.build_prompt(query, results), max_tokens=self.max_tokens, temperature=0.2
            )
        except Exception as e:
            raise EnrichmentError(f"enrichment call failed: {e}") from e
        text = getattr(response, "text", response)
        entries = _parse_json_array(text if isinstance(text, str) else "")

        annotations: dict[int, dict[str, Any]] = {}
        for position, entry in enumerate(entries):
            if not isinstance(entry, dict):
                continue
            index = entry.get("index", position)
            if isinstance(index, int) and 0 <= index < len(results):
                annotations[index] = _coerce_annotation(entry)
        if not annotations:
            raise EnrichmentError("enricher output matched none of the results")

        logger.debug(f"Enrichment: annotated {len(annotations)}/{len(results)} results")
        return [
            r.model_copy(update={"enrichment": annotations[i]}) if i in annotations else r
            for i, r in enumerate(results)
        ]
