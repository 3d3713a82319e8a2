"""Tools registry for the MCP tool server."""

from typing import Any

from mcp import types
from mcp.server.lowlevel import Server
from pydantic import ValidationError

from toolrelay import __version__
from toolrelay.errors import ToolExecutionError
from toolrelay.tools.base import ToolDefinition
from toolrelay.tools.weather import NWSClient, create_get_alerts_tool, create_get_forecast_tool
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)

SERVER_NAME = "weather"


class ToolsRegistry:
    """Registry for managing the tools the MCP server exposes."""

    def __init__(self, nws: NWSClient):
        """Initialize tools registry with service dependencies."""
        self.nws = nws
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the default set of weather tools."""
        tools = [
            create_get_alerts_tool(self.nws),
            create_get_forecast_tool(self.nws),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def list_mcp_tools(self) -> list[types.Tool]:
        return [tool.to_mcp_tool() for tool in self._tools.values()]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
        """Validate arguments and run a tool.

        Raises:
            ToolExecutionError: Unknown tool or invalid arguments
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(name, f"Unknown tool: {name}")

        try:
            params = tool.parse_input(arguments or {})
        except ValidationError as e:
            raise ToolExecutionError(name, f"Invalid arguments for {name}: {e}") from e

        logger.info(f"Calling tool {name} with {params.model_dump()}")
        text = await tool.handler(params)
        return [types.TextContent(type="text", text=text)]

    def build_server(self) -> Server:
        """Build a low-level MCP server whose handlers delegate to this registry."""
        server = Server(SERVER_NAME, version=__version__)

        @server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return self.list_mcp_tools()

        @server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
            return await self.call_tool(name, arguments)

        return server
