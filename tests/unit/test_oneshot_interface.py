from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from search_agent.core.errors import SearchValidationError
from search_agent.core.history import SearchHistoryRecorder
from search_agent.interfaces.oneshot import run_search, run_status
from search_agent.main import build_parser
from search_agent.search.cache import ResultCache
from search_agent.search.constants import SearchType
from search_agent.search.interface import SearchAdapter
from search_agent.search.models import SearchOutcome, SearchResult
from search_agent.search.orchestrator import SearchOrchestrator


def _patch_setup(monkeypatch, orchestrator=None, registry=None):
    registry = registry or MagicMock()
    orchestrator = orchestrator or MagicMock()
    monkeypatch.setattr(
        "search_agent.interfaces.oneshot.setup_search",
        AsyncMock(return_value=(registry, orchestrator, [registry])),
    )
    shutdown = AsyncMock()
    monkeypatch.setattr("search_agent.interfaces.oneshot.shutdown", shutdown)
    return shutdown


@pytest.mark.asyncio
async def test_run_search_prints_outcome_json(monkeypatch, capsys):
    outcome = SearchOutcome(
        query="react hooks",
        type="docs",
        results=[SearchResult(title="useState", url="https://react.dev", source="documentation", rank=1)],
        total_results=1,
    )
    orchestrator = SimpleNamespace(search=AsyncMock(return_value=outcome), wait_for_hooks=AsyncMock())
    shutdown = _patch_setup(monkeypatch, orchestrator=orchestrator)

    code = await run_search("react hooks", "docs", max_results=5)

    assert code == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed["results"][0]["title"] == "useState"
    assert orchestrator.search.await_args.args[2].max_results == 5
    shutdown.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_search_rejects_empty_query(capsys):
    code = await run_search("   ")
    assert code == 2
    assert "must not be empty" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_search_maps_validation_errors_to_exit_2(monkeypatch, capsys):
    orchestrator = SimpleNamespace(
        search=AsyncMock(side_effect=SearchValidationError("unknown search type 'images'")),
        wait_for_hooks=AsyncMock(),
    )
    shutdown = _patch_setup(monkeypatch, orchestrator=orchestrator)

    code = await run_search("q", "images")

    assert code == 2
    assert "unknown search type" in capsys.readouterr().out
    shutdown.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_status_prints_health_snapshot(monkeypatch, capsys):
    registry = MagicMock()
    registry.get_status.return_value = {"github": {"connected": True, "state": "connected"}}
    _patch_setup(monkeypatch, registry=registry)

    assert await run_status() == 0
    assert json.loads(capsys.readouterr().out)["github"]["connected"] is True


def test_cli_parser_accepts_search_flags():
    args = build_parser().parse_args(["search", "react", "hooks", "-t", "github", "-n", "3", "--enrich"])
    assert args.query == ["react", "hooks"]
    assert args.search_type == "github"
    assert args.max_results == 3
    assert args.enrich


def test_cli_parser_rejects_unknown_type():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["search", "q", "--type", "images"])


@pytest.mark.asyncio
async def test_history_recorder_appends_json_lines(tmp_path):
    recorder = SearchHistoryRecorder(tmp_path / "logs" / "searches.jsonl")

    await recorder("react hooks", "github", 2, 12.345)
    recorder.record("vue", "docs", 0, 1.0)

    entries = recorder.read_recent()
    assert [e["query"] for e in entries] == ["react hooks", "vue"]
    assert entries[0]["elapsed_ms"] == 12.3
    assert recorder.read_recent(limit=1)[0]["type"] == "docs"


@pytest.mark.asyncio
async def test_history_recorder_runs_as_background_search_hook(tmp_path):
    recorder = SearchHistoryRecorder(tmp_path / "searches.jsonl")
    adapter = MagicMock(spec=SearchAdapter)
    adapter.name = "docs-stub"
    adapter.is_active.return_value = True
    adapter.search = AsyncMock(return_value=[SearchResult(title="vue", url="https://vuejs.org", source="documentation")])
    orchestrator = SearchOrchestrator(
        MagicMock(),
        [adapter],
        cache=ResultCache(ttl=0),
        on_search_completed=recorder,
        routes={SearchType.DOCS: ("docs-stub",)},
    )

    await orchestrator.search("vue", "docs")
    await orchestrator.wait_for_hooks()

    [entry] = recorder.read_recent()
    assert (entry["query"], entry["type"], entry["results"]) == ("vue", "docs", 1)
