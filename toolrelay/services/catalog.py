"""Live tool catalog read from the MCP tool server."""

from mcp import ClientSession
from mcp.shared.exceptions import McpError

from toolrelay.clients.mcp import TRANSPORT_FAILURES
from toolrelay.errors import ToolServiceUnavailable
from toolrelay.models.llm import ToolDescriptor
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)


class ToolCatalog:
    """Translates the tool server's current tool list into model tool schemas.

    Deliberately uncached: every exchange asks the server again, so tools that
    appear or disappear take effect on the next request.
    """

    def __init__(self, session: ClientSession):
        self.session = session

    async def list_tools(self) -> list[ToolDescriptor]:
        """Fetch the tool list.

        Raises:
            ToolServiceUnavailable: The tool server could not be reached
        """
        try:
            result = await self.session.list_tools()
        except (*TRANSPORT_FAILURES, McpError) as e:
            logger.error(f"Failed to list tools: {e!r}")
            raise ToolServiceUnavailable(f"Tool service unavailable: {e}") from e

        tools = [
            ToolDescriptor(name=tool.name, description=tool.description or "", input_schema=tool.inputSchema)
            for tool in result.tools
        ]
        logger.info(f"Available tools: {[tool.name for tool in tools]}")
        return tools
