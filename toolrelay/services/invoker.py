"""Execution of individual tool calls against the MCP tool server."""

import json

from mcp import ClientSession
from mcp.shared.exceptions import McpError
from mcp.types import CallToolResult, TextContent

from toolrelay.clients.mcp import TRANSPORT_FAILURES
from toolrelay.errors import ToolExecutionError, ToolServiceUnavailable
from toolrelay.models.llm import ToolResultBlock, ToolUseBlock
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)


class ToolInvoker:
    """Runs one tool_use block and turns the outcome into a tool_result block."""

    def __init__(self, session: ClientSession):
        self.session = session

    async def invoke(self, tool_use: ToolUseBlock) -> ToolResultBlock:
        """Execute a tool call.

        Tool failures come back as an error-flagged result so the model can
        adapt; only an unreachable tool server is raised.

        Raises:
            ToolServiceUnavailable: The tool server could not be reached
        """
        logger.info(f"Executing tool: {tool_use.name} with input: {tool_use.input}")
        try:
            content = await self._call(tool_use)
        except ToolServiceUnavailable:
            raise
        except ToolExecutionError as e:
            logger.warning(f"Tool {tool_use.name} failed: {e}")
            return self._error_result(tool_use, str(e))
        except Exception as e:
            logger.error(f"Tool execution error in {tool_use.name}: {e}", exc_info=True)
            return self._error_result(tool_use, str(e) or type(e).__name__)

        logger.debug(f"Tool {tool_use.name} succeeded: {content[:100]}...")
        return ToolResultBlock(tool_use_id=tool_use.id, content=content, is_error=False)

    async def _call(self, tool_use: ToolUseBlock) -> str:
        try:
            result: CallToolResult = await self.session.call_tool(tool_use.name, arguments=tool_use.input)
        except TRANSPORT_FAILURES as e:
            raise ToolServiceUnavailable(f"Tool service unavailable: {e}") from e
        except McpError as e:
            raise ToolExecutionError(tool_use.name, e.error.message) from e

        if result.isError:
            raise ToolExecutionError(tool_use.name, _error_text(result) or f"Tool {tool_use.name} reported an error")

        return json.dumps([item.model_dump(mode="json", exclude_none=True) for item in result.content])

    @staticmethod
    def _error_result(tool_use: ToolUseBlock, message: str) -> ToolResultBlock:
        return ToolResultBlock(
            tool_use_id=tool_use.id,
            content=json.dumps({"error": message}),
            is_error=True,
        )


def _error_text(result: CallToolResult) -> str:
    return "\n".join(item.text for item in result.content if isinstance(item, TextContent))
