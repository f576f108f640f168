import asyncio
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

# keep logs out of the working tree and tracing off before search_agent is imported
os.environ.setdefault("LOGS_DIR", str(Path(tempfile.gettempdir()) / "search-agent-test-logs"))
os.environ.setdefault("LANGSMITH_TRACING", "false")

import pytest

from search_agent.core.errors import ProviderConnectionError, ToolCallError
from search_agent.providers.config import ProviderConfig, ReconnectPolicy
from search_agent.providers.transport import ProviderTransport


class FakeTransport(ProviderTransport):
    """In-memory provider: canned tool replies, scriptable failures, manual loss."""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        fail_open: bool = False,
        tools: list[dict[str, Any]] | None = None,
        replies: dict[str, Any] | None = None,
        list_errors: Sequence[str] = (),
        close_error: Exception | None = None,
        list_gate: asyncio.Event | None = None,
    ):
        super().__init__(config)
        self.fail_open = fail_open
        self.tools = tools if tools is not None else [{"name": "search"}]
        self.replies = replies or {}
        self.list_errors = set(list_errors)
        self.close_error = close_error
        self.list_gate = list_gate
        self.listing = False
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        if self.fail_open:
            raise ProviderConnectionError(f"{self.name}: refused", provider=self.name)
        self.opened = True

    async def _listing(self, kind: str, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if kind in self.list_errors:
            raise RuntimeError(f"{kind} not supported")
        return items

    async def list_tools(self):
        if self.list_gate is not None:
            self.listing = True
            await self.list_gate.wait()
        return await self._listing("tools", self.tools)

    async def list_resources(self):
        return await self._listing("resources", [{"uri": "file:///readme"}])

    async def list_prompts(self):
        return await self._listing("prompts", [])

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        reply = self.replies.get(name)
        if callable(reply):
            reply = await reply(arguments)
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise ToolCallError(f"unknown tool {name}")
        return reply

    async def read_resource(self, uri: str) -> dict[str, Any]:
        return {"contents": [{"uri": uri, "text": "hello"}]}

    async def get_prompt(self, name: str, arguments=None) -> dict[str, Any]:
        return {"messages": [{"role": "user", "content": {"type": "text", "text": name}}]}

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    def drop(self, error: BaseException | None = None) -> None:
        self._notify_lost(error or ConnectionResetError("peer went away"))


class FakeTransportFactory:
    """Transport factory for ProviderRegistry. Names in `failing` refuse the handshake."""

    def __init__(self):
        self.created: list[FakeTransport] = []
        self.failing: set[str] = set()
        self.replies: dict[str, dict[str, Any]] = {}
        self.list_errors: dict[str, Sequence[str]] = {}
        self.close_errors: dict[str, Exception] = {}
        self.list_gates: dict[str, asyncio.Event] = {}

    def __call__(self, config: ProviderConfig) -> FakeTransport:
        transport = FakeTransport(
            config,
            fail_open=config.name in self.failing,
            replies=self.replies.get(config.name),
            list_errors=self.list_errors.get(config.name, ()),
            close_error=self.close_errors.get(config.name),
            list_gate=self.list_gates.get(config.name),
        )
        self.created.append(transport)
        return transport

    def latest(self, name: str) -> FakeTransport:
        return [t for t in self.created if t.name == name][-1]

    def opened(self, name: str) -> int:
        return sum(1 for t in self.created if t.name == name)


def make_provider(
    name: str, *, max_attempts: int = 3, delay: float = 0.01, enabled: bool = True
) -> ProviderConfig:
    return ProviderConfig(
        name=name,
        command="npx",
        args=["-y", f"{name}-mcp"],
        enabled=enabled,
        reconnect=ReconnectPolicy(max_attempts=max_attempts, delay=delay),
    )


@pytest.fixture
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def provider_config():
    return make_provider


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration/e2e tests that spawn real MCP servers.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "integration: requires runtime services or user configuration"
    )
    config.addinivalue_line("markers", "e2e: end-to-end runtime tests")
    config.addinivalue_line("markers", "property: property-based deterministic tests")


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: Sequence[pytest.Item],
) -> None:
    run_integration = config.getoption("--run-integration")
    skip_integration = pytest.mark.skip(
        reason="integration/e2e is opt-in; rerun with --run-integration"
    )

    for item in items:
        if "tests/e2e/" in item.nodeid:
            item.add_marker("integration")
            item.add_marker("e2e")
        if (
            item.get_closest_marker("integration") or item.get_closest_marker("e2e")
        ) and not run_integration:
            item.add_marker(skip_integration)
