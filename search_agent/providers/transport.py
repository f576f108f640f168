"""MCP transports for provider sessions (stdio, SSE, streamable HTTP).

Each MCPTransport runs its ClientSession inside one owner task: the SDK's
anyio cancel scopes must be entered and exited by the same task, and the
owner doubles as the liveness watcher (periodic ping). Loss of the
connection is reported through the lost callback installed by the registry.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AsyncExitStack
from typing import Any

import anyio
from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import get_default_environment, stdio_client
from mcp.client.streamable_http import streamablehttp_client

from search_agent.core.errors import (
    ProviderConnectionError,
    ProviderNotConnected,
    ToolCallError,
)
from search_agent.providers.config import ProviderConfig

logger = logging.getLogger(__name__)

LostCallback = Callable[[BaseException], None]

# Stream errors meaning the peer is gone; everything else is a per-call failure.
_BROKEN_STREAM_ERRORS = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
)


def _extract_text_from_content(content: list) -> str:
    parts: list[str] = []
    for item in content or []:
        if hasattr(item, "text") and item.text:
            parts.append(item.text)
        elif isinstance(item, dict) and item.get("type") == "text":
            parts.append(item.get("text", ""))
    return "".join(parts)


def _dump(items: list[Any]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for item in items or []:
        if hasattr(item, "model_dump"):
            out.append(item.model_dump(mode="json", exclude_none=True))
        elif isinstance(item, dict):
            out.append(dict(item))
    return out


class ProviderTransport(ABC):
    """Connection to one provider endpoint."""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._on_lost: LostCallback | None = None

    @property
    def name(self) -> str:
        return self.config.name

    def set_lost_callback(self, callback: LostCallback | None) -> None:
        self._on_lost = callback

    def _notify_lost(self, error: BaseException) -> None:
        callback = self._on_lost
        if callback is None:
            return
        try:
            callback(error)
        except Exception:
            logger.exception("Transport %s: lost callback failed", self.name)

    @abstractmethod
    async def open(self) -> None:
        """Establish the connection and perform the handshake.

        Raises ProviderConnectionError on failure.
        """

    @abstractmethod
    async def list_tools(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def list_resources(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def list_prompts(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Invoke a tool once. Raises ToolCallError when the provider reports an error."""

    @abstractmethod
    async def read_resource(self, uri: str) -> dict[str, Any]: ...

    @abstractmethod
    async def get_prompt(
        self, name: str, arguments: dict[str, str] | None = None
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Must not report loss for a requested close."""


class MCPTransport(ProviderTransport):
    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self._session: ClientSession | None = None
        self._task: asyncio.Task | None = None
        self._opened: asyncio.Future | None = None
        self._wake: asyncio.Event | None = None
        self._closing = False
        self._broken: BaseException | None = None
        self._stderr_devnull: Any = None

    async def open(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"Transport {self.name} is already open")
        loop = asyncio.get_running_loop()
        self._opened = loop.create_future()
        self._wake = asyncio.Event()
        self._closing = False
        self._broken = None
        self._task = asyncio.create_task(self._run(), name=f"mcp:{self.name}")
        try:
            await asyncio.wait_for(
                asyncio.shield(self._opened), timeout=self.config.connect_timeout
            )
        except asyncio.TimeoutError as e:
            await self._stop_task()
            raise ProviderConnectionError(
                f"{self.name}: handshake timed out after {self.config.connect_timeout:.0f}s",
                provider=self.name,
                cause=e,
            ) from e
        except (ProviderConnectionError, asyncio.CancelledError):
            await self._stop_task()
            raise

    async def _open_streams(self, stack: AsyncExitStack) -> tuple[Any, Any]:
        cfg = self.config
        if cfg.transport == "stdio":
            self._stderr_devnull = open(os.devnull, "w")
            server_params = StdioServerParameters(
                command=cfg.command or "",
                args=list(cfg.args),
                env=self._stdio_env(),
            )
            read_stream, write_stream = await stack.enter_async_context(
                stdio_client(server_params, errlog=self._stderr_devnull)
            )
        elif cfg.transport == "sse":
            read_stream, write_stream = await stack.enter_async_context(
                sse_client(cfg.url or "", headers=self._headers())
            )
        else:
            read_stream, write_stream, _ = await stack.enter_async_context(
                streamablehttp_client(cfg.url or "", headers=self._headers())
            )
        return read_stream, write_stream

    def _stdio_env(self) -> dict[str, str] | None:
        if not self.config.env and not self.config.credentials:
            return None
        return {
            **get_default_environment(),
            **(self.config.env or {}),
            **self.config.credentials,
        }

    def _headers(self) -> dict[str, str] | None:
        headers = {**(self.config.headers or {}), **self.config.credentials}
        return headers or None

    async def _run(self) -> None:
        assert self._opened is not None
        error: BaseException | None = None
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await self._open_streams(stack)
                session = await stack.enter_async_context(
                    ClientSession(read_stream, write_stream)
                )
                await session.initialize()
                self._session = session
                self._opened.set_result(None)
                logger.info(
                    "MCP: connected  %s  (%s)", self.name, self.config.transport
                )
                await self._watch(session)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e
        finally:
            self._session = None
            self._close_devnull()

        if not self._opened.done():
            self._opened.set_exception(
                ProviderConnectionError(
                    f"{self.name}: handshake failed: {error!s}",
                    provider=self.name,
                    cause=error,
                )
            )
            return
        if not self._closing:
            logger.warning("MCP: connection lost  %s  %s", self.name, error)
            self._notify_lost(error or ConnectionResetError("transport closed"))

    async def _watch(self, session: ClientSession) -> None:
        """Block until close is requested; ping between wake-ups, raise on breakage."""
        assert self._wake is not None
        interval = self.config.heartbeat_interval
        while True:
            try:
                await asyncio.wait_for(
                    self._wake.wait(), timeout=interval if interval > 0 else None
                )
            except asyncio.TimeoutError:
                await asyncio.wait_for(session.send_ping(), timeout=max(interval, 1.0))
                continue
            self._wake.clear()
            if self._closing:
                return
            if self._broken is not None:
                raise self._broken

    def _mark_broken(self, error: BaseException) -> None:
        self._broken = error
        if self._wake is not None:
            self._wake.set()

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise ProviderNotConnected(self.name)
        return self._session

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self._require_session().list_tools()
        return _dump(result.tools)

    async def list_resources(self) -> list[dict[str, Any]]:
        result = await self._require_session().list_resources()
        return _dump(result.resources)

    async def list_prompts(self) -> list[dict[str, Any]]:
        result = await self._require_session().list_prompts()
        return _dump(result.prompts)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        session = self._require_session()
        try:
            result = await session.call_tool(name, arguments)
        except _BROKEN_STREAM_ERRORS as e:
            self._mark_broken(e)
            raise

        if getattr(result, "isError", False):
            text = _extract_text_from_content(result.content)
            raise ToolCallError(text.strip() or "Tool returned error")

        # Prefer structuredContent (MCP SDK can return tool result as dict)
        structured = getattr(result, "structuredContent", None)
        if isinstance(structured, dict):
            return dict(structured)

        text = _extract_text_from_content(result.content)
        if not text.strip():
            raise ToolCallError("MCP tool returned empty response")
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text

    async def read_resource(self, uri: str) -> dict[str, Any]:
        session = self._require_session()
        try:
            result = await session.read_resource(uri)  # type: ignore[arg-type]
        except _BROKEN_STREAM_ERRORS as e:
            self._mark_broken(e)
            raise
        return result.model_dump(mode="json", exclude_none=True)

    async def get_prompt(
        self, name: str, arguments: dict[str, str] | None = None
    ) -> dict[str, Any]:
        session = self._require_session()
        try:
            result = await session.get_prompt(name, arguments)
        except _BROKEN_STREAM_ERRORS as e:
            self._mark_broken(e)
            raise
        return result.model_dump(mode="json", exclude_none=True)

    async def _stop_task(self) -> None:
        task, self._task = self._task, None
        self._closing = True
        if self._wake is not None:
            self._wake.set()
        if task is None:
            return
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        self._closing = True
        if self._wake is not None:
            self._wake.set()
        try:
            await asyncio.wait_for(task, timeout=self.config.connect_timeout)
        except asyncio.TimeoutError:
            logger.warning("MCP: %s did not shut down in time; cancelled", self.name)
        except (GeneratorExit, RuntimeError) as e:
            if isinstance(e, RuntimeError) and "cancel scope" not in str(e):
                raise
            # anyio cancel-scope noise during shutdown
        self._close_devnull()
        logger.info("MCP: disconnected  %s", self.name)

    def _close_devnull(self) -> None:
        if self._stderr_devnull is not None:
            try:
                self._stderr_devnull.close()
            except OSError:
                pass
            self._stderr_devnull = None


def create_transport(config: ProviderConfig) -> ProviderTransport:
    return MCPTransport(config)
