"""Provider registry: owns named provider sessions, their transports and reconnect timers.

Sessions are only mutated here. Callers route invocations through invoke()
and observe lifecycle through on() listeners and get_status().
"""

import asyncio
import dataclasses
import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import StrEnum
from typing import Any

from search_agent.core.errors import (
    CapabilityError,
    InvocationError,
    ProviderConnectionError,
    ProviderNotConnected,
    ReconnectExhausted,
)
from search_agent.core.logger import logger
from search_agent.providers.config import ProviderConfig
from search_agent.providers.session import (
    CAPABILITY_KINDS,
    CapabilityManifest,
    ConnectionState,
    ProviderSession,
)
from search_agent.providers.transport import ProviderTransport, create_transport


class ProviderEvent(StrEnum):
    CONNECTED = "provider-connected"
    CONNECTION_FAILED = "provider-connection-failed"
    DISCONNECTED = "provider-disconnected"
    RECONNECTING = "provider-reconnecting"
    RECONNECT_FAILED = "provider-reconnect-failed"


Listener = Callable[[dict[str, Any]], Awaitable[None] | None]
TransportFactory = Callable[[ProviderConfig], ProviderTransport]


class ProviderRegistry:
    """Connect/disconnect/reconnect for named providers, plus invocation routing."""

    def __init__(self, transport_factory: TransportFactory = create_transport) -> None:
        self._transport_factory = transport_factory
        self._configs: dict[str, ProviderConfig] = {}
        self._sessions: dict[str, ProviderSession] = {}
        self._transports: dict[str, ProviderTransport] = {}
        self._reconnect_tasks: dict[str, asyncio.Task] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: dict[ProviderEvent, list[Listener]] = {}
        self._listener_tasks: set[asyncio.Future] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: ProviderEvent | str, callback: Listener) -> None:
        """Subscribe to a lifecycle event. Async callbacks are scheduled, not awaited."""
        self._listeners.setdefault(ProviderEvent(event), []).append(callback)

    def _emit(self, event: ProviderEvent, payload: dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                result = callback(payload)
            except Exception:
                logger.exception("Registry: listener for %s failed", event)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._listener_tasks.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Future) -> None:
        self._listener_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Registry: async listener failed: %s", task.exception())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    async def init(
        self, configs: Mapping[str, ProviderConfig] | Iterable[ProviderConfig]
    ) -> int:
        """Connect every enabled provider concurrently. Returns how many reached connected."""
        items = list(configs.values()) if isinstance(configs, Mapping) else list(configs)
        for cfg in items:
            self._configs[cfg.name] = cfg
        enabled = [cfg for cfg in items if cfg.enabled]
        logger.info(
            "Registry: connecting %s of %s providers (%s)",
            len(enabled),
            len(items),
            ", ".join(cfg.name for cfg in enabled),
        )
        await asyncio.gather(*(self._connect_logged(cfg) for cfg in enabled))
        connected = sum(1 for s in self._sessions.values() if s.connected)
        logger.info("Registry: %s/%s providers connected", connected, len(enabled))
        return connected

    async def _connect_logged(self, cfg: ProviderConfig) -> None:
        try:
            await self.connect(cfg.name, cfg)
        except ProviderConnectionError as e:
            logger.error("Registry: %s failed to connect: %s", cfg.name, e)
        except Exception:
            logger.exception("Registry: unexpected error connecting %s", cfg.name)

    async def connect(
        self, name: str, config: ProviderConfig | None = None
    ) -> ProviderSession:
        """Handshake with a provider, replacing any existing session under that name.

        Raises ProviderConnectionError when the handshake fails; no session is
        created in that case.
        """
        if self._closed:
            raise ProviderConnectionError("registry is shut down", provider=name)
        cfg = config or self._configs.get(name)
        if cfg is None:
            raise ProviderConnectionError(
                f"no configuration for provider '{name}'", provider=name
            )
        if cfg.name != name:
            cfg = dataclasses.replace(cfg, name=name)

        # a reconnect mid-handshake holds the lock
        await self._cancel_reconnect(name)
        async with self._lock(name):
            self._configs[name] = cfg
            await self._teardown(name)
            session = ProviderSession(name=name)
            session.transition(ConnectionState.CONNECTING)
            try:
                transport, manifest = await self._handshake(cfg)
            except ProviderConnectionError as e:
                logger.provider_event(
                    ProviderEvent.CONNECTION_FAILED, name, error=str(e)
                )
                self._emit(
                    ProviderEvent.CONNECTION_FAILED, {"name": name, "error": str(e)}
                )
                raise
            session.manifest = manifest
            session.transition(ConnectionState.CONNECTED)
            self._install(name, session, transport)

        logger.provider_event(
            ProviderEvent.CONNECTED, name, tools=manifest.tool_names()
        )
        self._emit(
            ProviderEvent.CONNECTED,
            {"name": name, "capabilities": manifest.as_dict()},
        )
        return session

    async def _handshake(
        self, cfg: ProviderConfig
    ) -> tuple[ProviderTransport, CapabilityManifest]:
        transport = self._transport_factory(cfg)
        try:
            await transport.open()
        except ProviderConnectionError:
            raise
        except Exception as e:
            raise ProviderConnectionError(
                f"{cfg.name}: {e!s}", provider=cfg.name, cause=e
            ) from e
        try:
            manifest = await self._list_capabilities(cfg.name, transport)
        except BaseException:
            await self._close_transport(cfg.name, transport)
            raise
        return transport, manifest

    async def _list_capabilities(
        self, name: str, transport: ProviderTransport
    ) -> CapabilityManifest:
        """List each capability kind independently; a failing kind stays None."""
        listers = {
            "tools": transport.list_tools,
            "resources": transport.list_resources,
            "prompts": transport.list_prompts,
        }
        replies = await asyncio.gather(
            *(listers[kind]() for kind in CAPABILITY_KINDS), return_exceptions=True
        )
        manifest = CapabilityManifest()
        for kind, reply in zip(CAPABILITY_KINDS, replies):
            if isinstance(reply, BaseException):
                err = CapabilityError(name, kind, reply)
                manifest.errors[kind] = str(err)
                logger.debug("Registry: %s", err)
                continue
            setattr(manifest, kind, list(reply or []))
        return manifest

    def _install(
        self, name: str, session: ProviderSession, transport: ProviderTransport
    ) -> None:
        transport.set_lost_callback(
            lambda error: self._on_transport_lost(name, transport, error)
        )
        self._sessions[name] = session
        self._transports[name] = transport

    async def _teardown(self, name: str) -> None:
        """Cancel the timer, close the transport (best effort) and drop the session."""
        await self._cancel_reconnect(name)
        session = self._sessions.pop(name, None)
        if session is not None and session.can_transition(ConnectionState.DISCONNECTED):
            session.transition(ConnectionState.DISCONNECTED)
        transport = self._transports.pop(name, None)
        if transport is not None:
            await self._close_transport(name, transport)

    async def _close_transport(self, name: str, transport: ProviderTransport) -> None:
        transport.set_lost_callback(None)
        try:
            await transport.close()
        except Exception as e:
            logger.warning("Registry: error closing %s: %s", name, e)

    async def disconnect(self, name: str) -> None:
        await self._cancel_reconnect(name)
        async with self._lock(name):
            await self._teardown(name)
        logger.provider_event(ProviderEvent.DISCONNECTED, name)
        self._emit(ProviderEvent.DISCONNECTED, {"name": name})

    async def shutdown(self) -> None:
        """Cancel every pending reconnect timer, then disconnect all sessions concurrently."""
        self._closed = True
        tasks = list(self._reconnect_tasks.values())
        self._reconnect_tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await asyncio.gather(*(self.disconnect(name) for name in list(self._sessions)))
        if self._listener_tasks:
            await asyncio.gather(*self._listener_tasks, return_exceptions=True)
        logger.info("Registry: shut down")

    # ------------------------------------------------------------------
    # Reconnect state machine
    # ------------------------------------------------------------------

    def _on_transport_lost(
        self, name: str, transport: ProviderTransport, error: BaseException
    ) -> None:
        if self._closed or self._transports.get(name) is not transport:
            return
        session = self._sessions.get(name)
        if session is None or session.state != ConnectionState.CONNECTED:
            return
        session.last_error = f"{type(error).__name__}: {error!s}"
        session.transition(ConnectionState.RECONNECTING)
        self._schedule_reconnect(name, session)

    def _schedule_reconnect(self, name: str, session: ProviderSession) -> None:
        policy = self._configs[name].reconnect
        if session.reconnect_attempts >= policy.max_attempts:
            session.transition(ConnectionState.FAILED)
            exhausted = ReconnectExhausted(name, session.reconnect_attempts)
            logger.provider_event(
                ProviderEvent.RECONNECT_FAILED, name, error=str(exhausted)
            )
            self._emit(
                ProviderEvent.RECONNECT_FAILED,
                {"name": name, "attempts": session.reconnect_attempts},
            )
            return
        session.reconnect_attempts += 1
        logger.provider_event(
            ProviderEvent.RECONNECTING,
            name,
            attempt=session.reconnect_attempts,
            delay=policy.delay,
        )
        self._emit(
            ProviderEvent.RECONNECTING,
            {"name": name, "attempt": session.reconnect_attempts},
        )
        self._reconnect_tasks[name] = asyncio.create_task(
            self._reconnect_after(name, policy.delay), name=f"reconnect:{name}"
        )

    async def _reconnect_after(self, name: str, delay: float) -> None:
        """Timer plus handshake; stays in _reconnect_tasks until it settles so it can be cancelled."""
        try:
            await asyncio.sleep(delay)
            await self._reconnect(name)
        finally:
            if self._reconnect_tasks.get(name) is asyncio.current_task():
                del self._reconnect_tasks[name]

    async def _reconnect(self, name: str) -> None:
        async with self._lock(name):
            session = self._sessions.get(name)
            if (
                self._closed
                or session is None
                or session.state != ConnectionState.RECONNECTING
            ):
                return
            stale = self._transports.pop(name, None)
            if stale is not None:
                await self._close_transport(name, stale)
            try:
                transport, manifest = await self._handshake(self._configs[name])
            except ProviderConnectionError as e:
                session.last_error = str(e)
                logger.warning(
                    "Registry: reconnect attempt %s for %s failed: %s",
                    session.reconnect_attempts,
                    name,
                    e,
                )
                self._schedule_reconnect(name, session)
                return
            session.manifest = manifest
            session.reconnect_attempts = 0
            session.transition(ConnectionState.CONNECTED)
            self._install(name, session, transport)

        logger.provider_event(ProviderEvent.CONNECTED, name, reconnected=True)
        self._emit(
            ProviderEvent.CONNECTED,
            {"name": name, "capabilities": manifest.as_dict()},
        )

    async def _cancel_reconnect(self, name: str) -> None:
        task = self._reconnect_tasks.pop(name, None)
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def pending_reconnects(self) -> list[str]:
        return [name for name, task in self._reconnect_tasks.items() if not task.done()]

    # ------------------------------------------------------------------
    # Invocation routing
    # ------------------------------------------------------------------

    def _connected_transport(self, provider: str) -> tuple[ProviderSession, ProviderTransport]:
        session = self._sessions.get(provider)
        if session is None or not session.connected:
            raise ProviderNotConnected(
                provider, str(session.state) if session is not None else None
            )
        return session, self._transports[provider]

    async def invoke(
        self, provider: str, capability: str, args: dict[str, Any] | None = None
    ) -> Any:
        """Forward one tool call. No retry; provider failures become InvocationError."""
        session, transport = self._connected_transport(provider)
        session.invocations += 1
        try:
            return await transport.call_tool(capability, dict(args or {}))
        except ProviderNotConnected:
            raise
        except Exception as e:
            session.last_error = f"{capability}: {e!s}"
            raise InvocationError(provider, capability, e) from e

    async def read_resource(self, provider: str, uri: str) -> dict[str, Any]:
        _, transport = self._connected_transport(provider)
        try:
            return await transport.read_resource(uri)
        except ProviderNotConnected:
            raise
        except Exception as e:
            raise InvocationError(provider, f"resource:{uri}", e) from e

    async def get_prompt(
        self, provider: str, name: str, arguments: dict[str, str] | None = None
    ) -> dict[str, Any]:
        _, transport = self._connected_transport(provider)
        try:
            return await transport.get_prompt(name, arguments)
        except ProviderNotConnected:
            raise
        except Exception as e:
            raise InvocationError(provider, f"prompt:{name}", e) from e

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def is_connected(self, name: str) -> bool:
        session = self._sessions.get(name)
        return session is not None and session.connected

    def get_session(self, name: str) -> ProviderSession | None:
        return self._sessions.get(name)

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Health snapshot: {name: {connected, state, reconnect_attempts, last_error}}."""
        return {name: session.status() for name, session in self._sessions.items()}

    def list_providers(self) -> list[dict[str, Any]]:
        providers = []
        for name in sorted(self._sessions):
            session = self._sessions[name]
            cfg = self._configs.get(name)
            providers.append(
                {
                    "name": name,
                    "state": str(session.state),
                    "connected": session.connected,
                    "config": cfg.summary() if cfg else None,
                    "capabilities": session.manifest.as_dict(),
                    "capability_errors": dict(session.manifest.errors),
                    "invocations": session.invocations,
                }
            )
        return providers
