"""One-shot interface: connect providers, run a single command, print JSON, exit."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from search_agent.core.bootstrap import setup_search, shutdown
from search_agent.core.config import config
from search_agent.core.errors import SearchValidationError
from search_agent.search.models import SearchOptions


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _config_errors() -> list[str]:
    errors = config.validate()
    for e in errors:
        print(f"Error: {e}")
    return errors


async def run_search(
    query: str,
    search_type: str = "all",
    max_results: int | None = None,
    timeout_ms: int | None = None,
    enrich: bool = False,
) -> int:
    if not (query or "").strip():
        print("Error: query must not be empty")
        return 2
    if _config_errors():
        return 2
    try:
        options = SearchOptions(max_results=max_results, timeout_ms=timeout_ms, enrich=enrich)
    except ValueError as e:
        print(f"Error: {e}")
        return 2

    _, orchestrator, closables = await setup_search()
    try:
        outcome = await orchestrator.search(query, search_type, options)
        await orchestrator.wait_for_hooks()
    except SearchValidationError as e:
        print(f"Error: {e}")
        return 2
    finally:
        await shutdown(closables)
    _print_json(outcome.model_dump(mode="json"))
    return 0


async def run_status() -> int:
    if _config_errors():
        return 2
    registry, _, closables = await setup_search()
    try:
        _print_json(registry.get_status())
    finally:
        await shutdown(closables)
    return 0


async def run_providers() -> int:
    if _config_errors():
        return 2
    registry, _, closables = await setup_search()
    try:
        _print_json(registry.list_providers())
    finally:
        await shutdown(closables)
    return 0


def main(command: str, **kwargs: Any) -> int:
    if command == "search":
        return asyncio.run(run_search(**kwargs))
    if command == "status":
        return asyncio.run(run_status())
    if command == "providers":
        return asyncio.run(run_providers())
    raise ValueError(f"unknown command: {command}")
