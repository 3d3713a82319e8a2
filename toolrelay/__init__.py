"""Tool-calling chat relay backed by an MCP tool server."""

__version__ = "0.1.0"
