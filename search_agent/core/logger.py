"""Structured logging: console output plus a JSON-lines event file."""

import contextvars
import json
import logging
import os
import sys
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from search_agent.core.config import config


def _format_duration(seconds: float) -> str:
    if seconds < 0:
        return "0s"
    if seconds >= 60:
        m = int(seconds // 60)
        s = seconds % 60
        if s < 0.05:
            return f"{m}m"
        return f"{m}m {s:.0f}s" if s >= 1 else f"{m}m {s:.1f}s"
    if seconds >= 0.05:
        return f"{seconds:.1f}s"
    if seconds > 0:
        return "<0.1s"
    return "0s"


def _short_reason(reason: str | None, max_len: int = 80) -> str:
    """One-line short reason for console (failed adapter)."""
    if not reason or not reason.strip():
        return ""
    s = reason.strip().replace("\n", " ").strip()
    return s[:max_len] + "..." if len(s) > max_len else s


_log_search_label: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "log_search_label", default=None
)
_log_search_start: contextvars.ContextVar[float | None] = contextvars.ContextVar(
    "log_search_start", default=None
)


def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    try:
        return sys.stdout.isatty()
    except Exception:
        return False


def _c(role: str) -> str:
    if not _use_color():
        return ""
    # 38;5;N = foreground 256-color
    codes = {
        "dim": "\033[38;5;239m",
        "provider": "\033[38;5;81m",  # cyan for provider/adapter names
        "run": "\033[38;5;78m",  # green for search start
        "done_ok": "\033[38;5;78m",
        "done_fail": "\033[38;5;203m",
        "duration": "\033[38;5;221m",  # yellow for durations
    }
    return codes.get(role, "")


def _reset() -> str:
    if not _use_color():
        return ""
    return "\033[0m"


@dataclass
class LogEvent:
    event_type: str
    timestamp: str
    data: dict[str, Any]

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class SearchAgentLogger:
    def __init__(self):
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = config.logs_dir / "agent.log"
        self._file_lock = threading.Lock()
        self._log_file_handle = open(self.log_file, "a", encoding="utf-8")
        self._setup_console_logger()

    def _setup_console_logger(self):
        self.console = logging.getLogger("search_agent")
        self.console.setLevel(logging.DEBUG)
        self._console_formatter = logging.Formatter(
            "%(asctime)s │ %(message)s", datefmt="%H:%M:%S"
        )
        if not self.console.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(getattr(logging, config.log_level, logging.INFO))
            handler.setFormatter(self._console_formatter)
            self.console.addHandler(handler)
        self._setup_third_party_console_logging()

    def _setup_third_party_console_logging(self):
        handler = logging.StreamHandler()
        handler.setLevel(logging.WARNING)
        handler.setFormatter(self._console_formatter)
        for name in ("mcp", "httpx"):
            log = logging.getLogger(name)
            log.setLevel(logging.WARNING)
            log.propagate = False
            if not log.handlers:
                log.addHandler(handler)

    def log_event(self, event: LogEvent) -> None:
        with self._file_lock:
            self._log_file_handle.write(event.to_json() + "\n")
            self._log_file_handle.flush()

    def _timestamp(self) -> str:
        return datetime.now().isoformat()

    def _prefix(self) -> str:
        label = _log_search_label.get()
        return f"  │ [{label}] " if label else ""

    def provider_event(self, event: str, name: str, **data: Any) -> None:
        """Lifecycle event for one provider (connected, disconnected, ...)."""
        self.log_event(
            LogEvent(
                event_type="PROVIDER_EVENT",
                timestamp=self._timestamp(),
                data={"event": event, "provider": name, **data},
            )
        )
        detail = ""
        if data.get("error"):
            detail = f"  {_c('done_fail')}{_short_reason(str(data['error']))}{_reset()}"
        self.console.info(f"{_c('provider')}{name}{_reset()}  {event}{detail}")

    def search_started(self, query: str, search_type: str, search_id: str) -> None:
        _log_search_label.set(search_id)
        _log_search_start.set(time.monotonic())
        self.log_event(
            LogEvent(
                event_type="SEARCH_STARTED",
                timestamp=self._timestamp(),
                data={"id": search_id, "query": query[:500], "type": search_type},
            )
        )
        shown = f"{query[:100]}{'...' if len(query) > 100 else ''}"
        self.console.info(f"{_c('run')}▶ Search{_reset()}  [{search_type}] {shown}")

    def adapter_result(
        self,
        adapter: str,
        result_count: int,
        *,
        error_reason: str | None = None,
    ) -> None:
        data: dict[str, Any] = {"adapter": adapter, "results": result_count}
        if error_reason:
            data["error_reason"] = error_reason[:500]
        self.log_event(
            LogEvent(event_type="ADAPTER_RESULT", timestamp=self._timestamp(), data=data)
        )
        if error_reason:
            status = f"{_c('done_fail')}[failed]{_reset()} {_short_reason(error_reason)}"
        else:
            status = f"{_c('done_ok')}[ok]{_reset()}"
        self.console.debug(
            f"{self._prefix()}{_c('provider')}{adapter}{_reset()}  {result_count} results  {status}"
        )

    def search_completed(
        self,
        query: str,
        search_type: str,
        result_count: int,
        elapsed_ms: float,
        *,
        failures: dict[str, str] | None = None,
        cached: bool = False,
    ) -> None:
        prefix = self._prefix()
        _log_search_label.set(None)
        _log_search_start.set(None)
        self.log_event(
            LogEvent(
                event_type="SEARCH_COMPLETED",
                timestamp=self._timestamp(),
                data={
                    "query": query[:500],
                    "type": search_type,
                    "results": result_count,
                    "elapsed_ms": round(elapsed_ms, 1),
                    "failures": failures or {},
                    "cached": cached,
                },
            )
        )
        dur = f"{_c('duration')}{_format_duration(elapsed_ms / 1000)}{_reset()}"
        source = "  (cache)" if cached else ""
        failed = f"  {len(failures)} failed" if failures else ""
        self.console.info(
            f"{prefix}{_c('done_ok')}✓ Done{_reset()}  {result_count} results  in {dur}{failed}{source}"
        )

    def error(self, message: str, *args, exception: Exception | None = None, **kwargs):
        event = LogEvent(
            event_type="ERROR",
            timestamp=self._timestamp(),
            data={
                "message": message,
                "exception": str(exception) if exception else None,
            },
        )
        self.log_event(event)

        # Filter kwargs for standard logger
        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        if exception and "exc_info" not in log_kwargs:
            log_kwargs["exc_info"] = exception

        self.console.error(f"❌ Error: {message}", *args, **log_kwargs)

    def info(self, message: str, *args, **kwargs):
        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.info(message, *args, **log_kwargs)

    def warning(self, message: str, *args, **kwargs):
        event = LogEvent(
            event_type="WARNING",
            timestamp=self._timestamp(),
            data={"message": message[:500]},
        )
        self.log_event(event)

        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.warning(f"⚠️ {message}", *args, **log_kwargs)

    def exception(self, message: str, *args, **kwargs):
        event = LogEvent(
            event_type="ERROR",
            timestamp=self._timestamp(),
            data={"message": message[:500]},
        )
        self.log_event(event)
        self.console.exception(f"❌ {message}", *args, **kwargs)

    def debug(self, message: str, *args, **kwargs):
        event = LogEvent(
            event_type="DEBUG", timestamp=self._timestamp(), data={"message": message}
        )
        self.log_event(event)

        allowed = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in allowed}
        self.console.debug(message, *args, **log_kwargs)


logger = SearchAgentLogger()
