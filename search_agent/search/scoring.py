"""Deduplication, term scoring and stable ranking of normalized results.

Score = 10 per query term in the title + 5 per term in the snippet
        + source weight + min(popularity / 1000, 5)
"""

import logging
import math

from search_agent.search.constants import (
    POPULARITY_CAP,
    POPULARITY_DIVISOR,
    SNIPPET_TERM_BONUS,
    SOURCE_WEIGHTS,
    TITLE_TERM_BONUS,
)
from search_agent.search.models import SearchResult

logger = logging.getLogger(__name__)


def query_terms(query: str) -> list[str]:
    """Lower-cased whitespace-split terms. Repeated terms count each time they appear."""
    return query.casefold().split()


def normalize_key(result: SearchResult) -> tuple[str, str]:
    return (result.url.strip().casefold(), result.title.strip().casefold())


def deduplicate_results(results: list[SearchResult]) -> list[SearchResult]:
    """Drop later results whose normalized (url, title) was already seen. No merging."""
    seen: set[tuple[str, str]] = set()
    unique: list[SearchResult] = []
    for r in results:
        key = normalize_key(r)
        if key in seen:
            continue
        seen.add(key)
        unique.append(r)
    return unique


def popularity_bonus(popularity: float | None) -> float:
    if popularity is None or not math.isfinite(popularity) or popularity <= 0:
        return 0.0
    return min(popularity / POPULARITY_DIVISOR, POPULARITY_CAP)


def compute_score(
    terms: list[str],
    title: str,
    snippet: str,
    source: str,
    popularity: float | None = None,
) -> float:
    """Pure function of its inputs."""
    title_lc = title.casefold()
    snippet_lc = snippet.casefold()
    score = 0.0
    for term in terms:
        if term in title_lc:
            score += TITLE_TERM_BONUS
        if term in snippet_lc:
            score += SNIPPET_TERM_BONUS
    score += SOURCE_WEIGHTS.get(source, 0)
    score += popularity_bonus(popularity)
    return score


def rank_results(results: list[SearchResult], query: str) -> list[SearchResult]:
    """Score and stable-sort descending; ties keep discovery order. Returns copies with rank set."""
    terms = query_terms(query)
    scored = [
        r.model_copy(
            update={"score": compute_score(terms, r.title, r.snippet, r.source, r.popularity)}
        )
        for r in results
    ]
    scored.sort(key=lambda r: -r.score)
    return [r.model_copy(update={"rank": i}) for i, r in enumerate(scored, start=1)]


def dedup_and_rank(results: list[SearchResult], query: str) -> list[SearchResult]:
    unique = deduplicate_results(results)
    ranked = rank_results(unique, query)
    logger.info(
        "Ranking: %s input -> %s deduped -> %s ranked",
        len(results),
        len(unique),
        len(ranked),
    )
    return ranked
