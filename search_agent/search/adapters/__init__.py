"""Per-provider search adapters."""

from search_agent.search.adapters.docs import DocsAdapter
from search_agent.search.adapters.files import FilesystemAdapter, FilesystemCodeAdapter
from search_agent.search.adapters.github import GitHubCodeAdapter, GitHubRepoAdapter
from search_agent.search.adapters.web import FirecrawlRenderAdapter, HeadlessRenderAdapter

__all__ = [
    "DocsAdapter",
    "FilesystemAdapter",
    "FilesystemCodeAdapter",
    "FirecrawlRenderAdapter",
    "GitHubCodeAdapter",
    "GitHubRepoAdapter",
    "HeadlessRenderAdapter",
]
