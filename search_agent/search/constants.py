"""Shared typed constants for search routing and scoring."""

from enum import StrEnum


class SearchType(StrEnum):
    """Type selector accepted by SearchOrchestrator.search."""

    WEB = "web"
    GITHUB = "github"
    FILES = "files"
    DOCS = "docs"
    CODE = "code"
    ALL = "all"


class ResultSource(StrEnum):
    """Source tag stamped on every SearchResult by its adapter."""

    WEB = "web"
    GITHUB_REPO = "github-repo"
    GITHUB_CODE = "github-code"
    FILE = "file"
    DOCUMENTATION = "documentation"


SOURCE_WEIGHTS: dict[str, float] = {
    ResultSource.GITHUB_REPO: 2,
    ResultSource.GITHUB_CODE: 3,
    ResultSource.DOCUMENTATION: 4,
    ResultSource.FILE: 1,
    ResultSource.WEB: 1,
}

TITLE_TERM_BONUS = 10
SNIPPET_TERM_BONUS = 5
POPULARITY_DIVISOR = 1000
POPULARITY_CAP = 5

DEFAULT_FILE_EXTENSIONS: tuple[str, ...] = (
    ".txt",
    ".md",
    ".js",
    ".json",
    ".py",
    ".html",
    ".css",
)
CODE_FILE_EXTENSIONS: tuple[str, ...] = (
    ".js",
    ".py",
    ".java",
    ".cpp",
    ".c",
    ".h",
    ".php",
    ".rb",
    ".go",
)

# Google result page markup parsed by both web adapters
GOOGLE_SEARCH_URL = "https://www.google.com/search"
RESULT_BLOCK_SELECTOR = "div.g"
RESULT_SNIPPET_SELECTOR = ".VwiC3b"
