from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anyio
import pytest
from mcp.client.stdio import get_default_environment

from search_agent.core.errors import ProviderConnectionError, ProviderNotConnected, ToolCallError
from search_agent.providers.config import ProviderConfig
from search_agent.providers.transport import MCPTransport, create_transport


def _transport(**kwargs) -> MCPTransport:
    cfg = ProviderConfig(name="github", command="npx", args=["-y", "server-github"], **kwargs)
    return MCPTransport(cfg)


def _with_session(transport: MCPTransport, result) -> MagicMock:
    session = MagicMock()
    session.call_tool = AsyncMock(return_value=result) if not isinstance(result, Exception) else AsyncMock(side_effect=result)
    transport._session = session
    return session


def _text(text: str) -> SimpleNamespace:
    return SimpleNamespace(isError=False, structuredContent=None, content=[SimpleNamespace(text=text)])


@pytest.mark.asyncio
async def test_call_tool_prefers_structured_content():
    transport = _transport()
    _with_session(
        transport,
        SimpleNamespace(isError=False, structuredContent={"items": [1]}, content=[SimpleNamespace(text="ignored")]),
    )
    assert await transport.call_tool("search_code", {"q": "x"}) == {"items": [1]}


@pytest.mark.asyncio
async def test_call_tool_decodes_json_text_or_returns_raw_text():
    transport = _transport()
    _with_session(transport, _text('{"repositories": []}'))
    assert await transport.call_tool("search_repositories", {}) == {"repositories": []}

    _with_session(transport, _text("<html>page</html>"))
    assert await transport.call_tool("scrape", {}) == "<html>page</html>"


@pytest.mark.asyncio
async def test_call_tool_error_results_raise():
    transport = _transport()
    _with_session(
        transport,
        SimpleNamespace(isError=True, structuredContent=None, content=[SimpleNamespace(text="Bad credentials")]),
    )
    with pytest.raises(ToolCallError, match="Bad credentials"):
        await transport.call_tool("search_code", {})

    _with_session(transport, _text("   "))
    with pytest.raises(ToolCallError, match="empty"):
        await transport.call_tool("search_code", {})


@pytest.mark.asyncio
async def test_broken_stream_marks_transport_for_loss():
    transport = _transport()
    _with_session(transport, anyio.ClosedResourceError())
    with pytest.raises(anyio.ClosedResourceError):
        await transport.call_tool("search_code", {})
    assert isinstance(transport._broken, anyio.ClosedResourceError)


@pytest.mark.asyncio
async def test_calls_without_session_raise_not_connected():
    with pytest.raises(ProviderNotConnected):
        await _transport().list_tools()


@pytest.mark.asyncio
async def test_open_failure_surfaces_connection_error(monkeypatch):
    transport = _transport(connect_timeout=1.0)

    async def refuse(stack):
        raise FileNotFoundError("npx: not found")

    monkeypatch.setattr(transport, "_open_streams", refuse)
    with pytest.raises(ProviderConnectionError, match="npx: not found"):
        await transport.open()
    await transport.close()


def test_credentials_go_to_env_for_stdio_and_headers_for_http():
    stdio = _transport(credentials={"GITHUB_PERSONAL_ACCESS_TOKEN": "t"})
    env = stdio._stdio_env()
    assert env["GITHUB_PERSONAL_ACCESS_TOKEN"] == "t"
    assert set(get_default_environment()) <= set(env)

    http = MCPTransport(
        ProviderConfig(
            name="remote",
            transport="http",
            url="https://mcp.example",
            headers={"X-Trace": "1"},
            credentials={"X-Api-Key": "k"},
        )
    )
    assert http._headers() == {"X-Trace": "1", "X-Api-Key": "k"}
    assert _transport()._stdio_env() is None


def test_factory_builds_mcp_transport():
    assert isinstance(create_transport(ProviderConfig(name="x", command="y")), MCPTransport)
