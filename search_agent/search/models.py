"""Search request options, normalized results and the aggregated outcome."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from search_agent.search.constants import SearchType


class SearchOptions(BaseModel):
    """Per-call options. Unset fields fall back to the configured defaults."""

    max_results: int | None = Field(default=None, ge=1, description="Truncate ranked results to this length")
    timeout_ms: int | None = Field(default=None, gt=0, description="Overall join deadline across adapters")
    enrich: bool = Field(default=False, description="Run the LLM enricher over the truncated list")
    filters: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Adapter name -> extra tool arguments merged into that adapter's request",
    )
    extensions: list[str] | None = Field(default=None, description="File extensions for filesystem search")

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        out = []
        for ext in value:
            ext = ext.strip().lower()
            if ext:
                out.append(ext if ext.startswith(".") else f".{ext}")
        return out


class SearchResult(BaseModel):
    """One normalized hit from any adapter."""

    title: str = ""
    url: str = ""
    snippet: str = ""
    source: str = Field(..., description="Source tag, e.g. github-repo or documentation")
    score: float = Field(default=0.0, ge=0)
    rank: int = Field(default=0, ge=0, description="1-based position after ranking; 0 before")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Provider-specific fields, opaque to ranking")
    popularity: float | None = Field(default=None, description="Popularity signal such as star count")
    enrichment: dict[str, Any] | None = None


class SearchOutcome(BaseModel):
    """Final response from the search orchestrator."""

    query: str
    type: SearchType
    results: list[SearchResult] = Field(default_factory=list, description="Rank-sorted results")
    total_results: int = Field(default=0, description="Deduplicated count before truncation")
    elapsed_ms: float = 0.0
    provider_failures: dict[str, str] = Field(default_factory=dict, description="Adapter name -> error summary")
    cached: bool = False
    enriched: bool = False
