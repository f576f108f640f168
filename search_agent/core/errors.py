"""Exception taxonomy for provider lifecycle and search orchestration.

Provider-level errors are absorbed by the orchestrator into the outcome's
provider_failures; only SearchValidationError rejects a search call.
"""

from __future__ import annotations


class SearchAgentError(Exception):
    """Base exception for search-agent errors."""


class ProviderConnectionError(SearchAgentError, ConnectionError):
    """Handshake with a provider failed. Isolated to that provider."""

    def __init__(self, message: str, provider: str | None = None, cause: BaseException | None = None):
        super().__init__(message)
        self.provider = provider
        self.cause = cause


class CapabilityError(SearchAgentError):
    """Listing one capability kind (tools/resources/prompts) failed. Non-fatal."""

    def __init__(self, provider: str, kind: str, cause: BaseException | None = None):
        super().__init__(f"{provider}: listing {kind} failed: {cause!s}")
        self.provider = provider
        self.kind = kind
        self.cause = cause


class ProviderNotConnected(SearchAgentError):
    def __init__(self, provider: str, state: str | None = None):
        suffix = f" (state={state})" if state else ""
        super().__init__(f"provider '{provider}' is not connected{suffix}")
        self.provider = provider
        self.state = state


class ToolCallError(SearchAgentError):
    """A provider answered a tool call with an error result."""


class InvocationError(SearchAgentError):
    """A provider-side failure, tagged with provider and tool."""

    def __init__(self, provider: str, tool: str, cause: BaseException):
        super().__init__(f"{provider}.{tool} failed: {cause!s}")
        self.provider = provider
        self.tool = tool
        self.cause = cause


class AdapterTimeoutError(SearchAgentError, TimeoutError):
    """An adapter did not settle before the search deadline."""

    def __init__(self, adapter: str, timeout_seconds: float):
        super().__init__(f"{adapter}: no reply within {timeout_seconds:.1f}s")
        self.adapter = adapter
        self.timeout_seconds = timeout_seconds


class ReconnectExhausted(SearchAgentError):
    """Terminal per-provider state: an explicit connect is required."""

    def __init__(self, provider: str, attempts: int):
        super().__init__(f"provider '{provider}' gave up after {attempts} reconnect attempts")
        self.provider = provider
        self.attempts = attempts


class SearchValidationError(SearchAgentError, ValueError):
    """Empty query, unknown search type or malformed options."""


class EnrichmentError(SearchAgentError):
    """Enrichment failed or returned malformed output. Non-fatal."""


class InvalidStateTransition(SearchAgentError):
    def __init__(self, provider: str, current: str, target: str):
        super().__init__(f"provider '{provider}': illegal transition {current} -> {target}")
        self.provider = provider
        self.current = current
        self.target = target
