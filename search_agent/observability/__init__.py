"""Observability: LangSmith tracing (env-controlled via LANGSMITH_TRACING)."""

from search_agent.observability.langsmith import (
    flush,
    trace,
    traceable,
)

__all__ = ["trace", "traceable", "flush"]
