"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from mcp import types
from pydantic import BaseModel

ToolHandler = Callable[[Any], Awaitable[str]]


@dataclass
class ToolDefinition:
    """Definition of a tool served by the MCP tool server."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def to_mcp_tool(self) -> types.Tool:
        """Describe this tool in MCP list_tools form."""
        return types.Tool(name=self.name, description=self.description, inputSchema=self.get_json_schema())
