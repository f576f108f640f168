"""MCP provider sessions: configuration, transports, state machine and registry."""
