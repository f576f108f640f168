"""Search history sink: one JSON line per completed search in logs/searches.jsonl."""

import asyncio
import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path

from search_agent.core.config import config

logger = logging.getLogger(__name__)


class SearchHistoryRecorder:
    """Async on_search_completed hook; the file append runs in a worker thread."""

    def __init__(self, path: Path | None = None):
        self.path = path or config.logs_dir / "searches.jsonl"
        self._lock = threading.Lock()

    async def __call__(
        self, query: str, search_type: str, result_count: int, elapsed_ms: float
    ) -> None:
        await asyncio.to_thread(self.record, query, search_type, result_count, elapsed_ms)

    def record(self, query: str, search_type: str, result_count: int, elapsed_ms: float) -> None:
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "query": query[:500],
            "type": search_type,
            "results": result_count,
            "elapsed_ms": round(elapsed_ms, 1),
        }
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.warning("Could not record search history to %s: %s", self.path, e)

    def read_recent(self, limit: int = 20) -> list[dict]:
        if not self.path.exists():
            return []
        entries = []
        with open(self.path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return entries[-limit:]
