"""Tools served by the MCP tool server."""

from toolrelay.tools.registry import ToolsRegistry

__all__ = ["ToolsRegistry"]
