"""Documentation adapter on the context7 provider."""

from typing import Any

from search_agent.search.constants import ResultSource
from search_agent.search.interface import ProviderAdapter, as_records, as_text
from search_agent.search.models import SearchOptions, SearchResult


class DocsAdapter(ProviderAdapter):
    name = "context7"
    provider = "context7"
    tool = "search"
    source = ResultSource.DOCUMENTATION

    def build_request(
        self, query: str, options: SearchOptions, max_results: int
    ) -> dict[str, Any]:
        return {"query": query, "type": "documentation", "maxResults": max_results}

    def parse_response(self, raw: Any) -> list[SearchResult]:
        if isinstance(raw, dict):
            raw = raw.get("results", raw.get("documents"))
        return [
            SearchResult(
                title=as_text(doc.get("title")),
                url=as_text(doc.get("url")),
                snippet=as_text(doc.get("content")),
                source=self.source,
                metadata={
                    "framework": doc.get("framework"),
                    "version": doc.get("version"),
                },
            )
            for doc in as_records(raw)
        ]
