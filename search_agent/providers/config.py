"""Provider connection settings.

One ProviderConfig per MCP server. stdio servers are spawned as subprocesses
(command + args); sse and http servers are reached by URL.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

TransportKind = Literal["stdio", "sse", "http"]

_TRANSPORTS = ("stdio", "sse", "http")


@dataclass
class ReconnectPolicy:
    max_attempts: int = 3
    delay: float = 5.0  # seconds between a loss (or failed attempt) and the next try

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("ReconnectPolicy.max_attempts must be >= 0")
        if self.delay < 0:
            raise ValueError("ReconnectPolicy.delay must be >= 0")


@dataclass
class ProviderConfig:
    name: str
    transport: TransportKind = "stdio"

    # stdio
    command: str | None = None
    args: list[str] = field(default_factory=list)
    env: dict[str, str] | None = None

    # sse / http
    url: str | None = None
    headers: dict[str, str] | None = None

    enabled: bool = True
    # stdio: forwarded as subprocess environment; sse/http: sent as headers
    credentials: dict[str, str] = field(default_factory=dict)
    # capability-specific parameters (allowed_paths, max_results, ...)
    limits: dict[str, Any] = field(default_factory=dict)
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)

    connect_timeout: float = 30.0
    heartbeat_interval: float = 15.0

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ProviderConfig.name cannot be empty")
        if self.transport not in _TRANSPORTS:
            raise ValueError(f"ProviderConfig '{self.name}': unknown transport '{self.transport}'")
        if self.transport == "stdio" and not self.command:
            raise ValueError(f"ProviderConfig '{self.name}': stdio transport requires 'command'")
        if self.transport in ("sse", "http") and not self.url:
            raise ValueError(f"ProviderConfig '{self.name}': {self.transport} transport requires 'url'")
        if isinstance(self.reconnect, dict):
            self.reconnect = ReconnectPolicy(**self.reconnect)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "ProviderConfig":
        """Build from a providers-file entry; unknown keys are rejected."""
        return cls(name=name, **data)

    def summary(self) -> dict[str, Any]:
        """Config view safe for status output: credential values are redacted."""
        return {
            "transport": self.transport,
            "command": self.command,
            "args": list(self.args),
            "url": self.url,
            "enabled": self.enabled,
            "credentials": {k: "***" for k in self.credentials},
            "limits": dict(self.limits),
            "reconnect": {
                "max_attempts": self.reconnect.max_attempts,
                "delay": self.reconnect.delay,
            },
        }
