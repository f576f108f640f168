"""Filesystem adapters: one search call per allowed root on the filesystem provider."""

import posixpath
from collections.abc import Sequence
from typing import Any

from search_agent.search.constants import (
    CODE_FILE_EXTENSIONS,
    DEFAULT_FILE_EXTENSIONS,
    ResultSource,
)
from search_agent.search.interface import (
    ProviderAdapter,
    ToolCall,
    as_number,
    as_records,
    as_text,
)
from search_agent.search.models import SearchOptions, SearchResult


class FilesystemAdapter(ProviderAdapter):
    name = "filesystem"
    provider = "filesystem"
    tool = "search"
    source = ResultSource.FILE
    default_extensions: tuple[str, ...] = DEFAULT_FILE_EXTENSIONS

    def __init__(self, allowed_paths: Sequence[str]):
        self.allowed_paths = list(allowed_paths)

    def _extensions(self, options: SearchOptions) -> list[str]:
        return list(options.extensions or self.default_extensions)

    def build_request(
        self, query: str, options: SearchOptions, max_results: int
    ) -> dict[str, Any]:
        return {
            "query": query,
            "extensions": self._extensions(options),
            "maxResults": max_results,
        }

    def build_requests(
        self, query: str, options: SearchOptions, max_results: int
    ) -> list[ToolCall]:
        extra = options.filters.get(self.name, {})
        calls = []
        for root in self.allowed_paths:
            arguments = {"path": root, **self.build_request(query, options, max_results), **extra}
            calls.append(ToolCall(self.provider, self.tool, arguments))
        return calls

    def parse_response(self, raw: Any) -> list[SearchResult]:
        files = as_records(raw.get("files")) if isinstance(raw, dict) else as_records(raw)
        results = []
        for entry in files:
            path = as_text(entry.get("path"))
            if not path:
                continue
            results.append(
                SearchResult(
                    title=posixpath.basename(path.replace("\\", "/")) or path,
                    url=f"file://{path}",
                    snippet=as_text(entry.get("preview")),
                    source=self.source,
                    metadata={
                        "path": path,
                        "size": as_number(entry.get("size")),
                        "modified_at": entry.get("modifiedAt"),
                    },
                )
            )
        return results


class FilesystemCodeAdapter(FilesystemAdapter):
    """Same provider call restricted to source-code extensions."""

    name = "filesystem-code"
    default_extensions = CODE_FILE_EXTENSIONS

    def _extensions(self, options: SearchOptions) -> list[str]:
        return list(self.default_extensions)
