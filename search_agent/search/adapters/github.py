"""GitHub adapters: repository search and code search on the github provider."""

from typing import Any

from search_agent.search.constants import ResultSource
from search_agent.search.interface import ProviderAdapter, as_number, as_records, as_text
from search_agent.search.models import SearchOptions, SearchResult


def _records(raw: Any, *keys: str) -> list[dict[str, Any]]:
    if isinstance(raw, list):
        return as_records(raw)
    if not isinstance(raw, dict):
        return []
    for key in keys:
        if isinstance(raw.get(key), list):
            return as_records(raw[key])
    return []


class GitHubRepoAdapter(ProviderAdapter):
    name = "github-repo"
    provider = "github"
    tool = "search_repositories"
    source = ResultSource.GITHUB_REPO

    def build_request(
        self, query: str, options: SearchOptions, max_results: int
    ) -> dict[str, Any]:
        return {"query": query, "per_page": max_results}

    def parse_response(self, raw: Any) -> list[SearchResult]:
        results = []
        for repo in _records(raw, "repositories", "items"):
            stars = as_number(repo.get("stargazers_count"))
            results.append(
                SearchResult(
                    title=as_text(repo.get("full_name")) or as_text(repo.get("name")),
                    url=as_text(repo.get("html_url")),
                    snippet=as_text(repo.get("description")),
                    source=self.source,
                    popularity=stars,
                    metadata={
                        "stars": stars,
                        "language": repo.get("language"),
                        "updated_at": repo.get("updated_at"),
                    },
                )
            )
        return results


class GitHubCodeAdapter(ProviderAdapter):
    name = "github-code"
    provider = "github"
    tool = "search_code"
    source = ResultSource.GITHUB_CODE

    def build_request(
        self, query: str, options: SearchOptions, max_results: int
    ) -> dict[str, Any]:
        return {"q": query, "per_page": max_results}

    def parse_response(self, raw: Any) -> list[SearchResult]:
        results = []
        for item in _records(raw, "items"):
            repository = item.get("repository")
            if not isinstance(repository, dict):
                repository = {}
            results.append(
                SearchResult(
                    title=as_text(item.get("name")),
                    url=as_text(item.get("html_url")),
                    snippet=as_text(repository.get("description")),
                    source=self.source,
                    metadata={
                        "repository": as_text(repository.get("full_name")),
                        "path": as_text(item.get("path")),
                    },
                )
            )
        return results
