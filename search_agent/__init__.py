"""search-agent: search aggregation across MCP providers."""

__version__ = "0.1.0"
