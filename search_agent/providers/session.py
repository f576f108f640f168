"""Provider session: one connected endpoint, its capability manifest and connection state."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from search_agent.core.errors import InvalidStateTransition


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


# FAILED has no automatic way out; an explicit connect replaces the session.
_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.RECONNECTING, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.RECONNECTING: frozenset(
        {
            ConnectionState.CONNECTED,
            ConnectionState.FAILED,
            ConnectionState.DISCONNECTED,
        }
    ),
    ConnectionState.FAILED: frozenset({ConnectionState.DISCONNECTED}),
}

CAPABILITY_KINDS = ("tools", "resources", "prompts")


@dataclass
class CapabilityManifest:
    """What a provider exposes. A kind is None when listing it failed."""

    tools: list[dict[str, Any]] | None = None
    resources: list[dict[str, Any]] | None = None
    prompts: list[dict[str, Any]] | None = None
    errors: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "tools": list(self.tools or []),
            "resources": list(self.resources or []),
            "prompts": list(self.prompts or []),
        }

    def tool_names(self) -> list[str]:
        return [str(t.get("name")) for t in self.tools or [] if t.get("name")]

    def has_tool(self, name: str) -> bool:
        return name in self.tool_names()


@dataclass
class ProviderSession:
    name: str
    state: ConnectionState = ConnectionState.DISCONNECTED
    manifest: CapabilityManifest = field(default_factory=CapabilityManifest)
    reconnect_attempts: int = 0
    last_error: str | None = None
    connected_at: datetime | None = None
    invocations: int = 0

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def can_transition(self, target: ConnectionState) -> bool:
        return target in _TRANSITIONS[self.state]

    def transition(self, target: ConnectionState) -> None:
        if not self.can_transition(target):
            raise InvalidStateTransition(self.name, str(self.state), str(target))
        self.state = target
        if target == ConnectionState.CONNECTED:
            self.connected_at = datetime.now(UTC)

    def status(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "state": str(self.state),
            "reconnect_attempts": self.reconnect_attempts,
            "last_error": self.last_error,
        }
