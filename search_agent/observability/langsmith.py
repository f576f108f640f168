"""LangSmith tracing integration.

langsmith's decorators are pass-through unless LANGSMITH_TRACING=true, so
they stay on the hot path unconditionally; this module only pins the
project name.
"""

from __future__ import annotations

import atexit
import os
from collections.abc import Callable
from typing import Any, Literal, cast

from langsmith import Client as LangSmithClient
from langsmith import traceable as _ls_traceable
from langsmith.run_helpers import trace as _ls_trace

_ENABLED = os.getenv("LANGSMITH_TRACING", "").strip().lower() == "true"
_PROJECT = os.getenv("LANGSMITH_PROJECT", "search-agent")

_LangSmithRunType = Literal[
    "tool", "chain", "llm", "retriever", "embedding", "prompt", "parser"
]

_client: LangSmithClient | None = None


def _get_client() -> LangSmithClient | None:
    global _client
    if not _ENABLED:
        return None
    if _client is None:
        _client = LangSmithClient()
    return _client


def trace(
    name: str,
    run_type: str = "chain",
    *,
    inputs: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    **kwargs: Any,
):
    return _ls_trace(
        name,
        run_type=cast("_LangSmithRunType", run_type),
        inputs=inputs or {},
        metadata=metadata or {},
        project_name=_PROJECT,
        **kwargs,
    )


def traceable(
    name: str | None = None,
    run_type: str = "chain",
    **kwargs: Any,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return _ls_traceable(  # type: ignore[call-overload]
        name=name,
        run_type=run_type,
        project_name=_PROJECT,
        **kwargs,
    )


def flush() -> None:
    c = _get_client()
    if c is not None:
        c.flush()


if _ENABLED:
    atexit.register(flush)
