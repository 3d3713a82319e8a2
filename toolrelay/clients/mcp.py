"""Connection from the relay to the MCP tool server."""

from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

import anyio
import httpx
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation

from toolrelay import __version__
from toolrelay.config import ToolServerConnectionConfig
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)

CLIENT_NAME = "chatbot-backend"

# Exceptions meaning the tool server itself is unreachable, as opposed to a
# single tool call going wrong.
TRANSPORT_FAILURES: tuple[type[BaseException], ...] = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
    httpx.TransportError,
    OSError,
)


@asynccontextmanager
async def connect_tool_server(config: ToolServerConnectionConfig) -> AsyncIterator[ClientSession]:
    """Open and initialize an MCP client session for the lifetime of the context.

    Uses streamable HTTP with a bearer token when a URL is configured, otherwise
    spawns the tool server as a stdio subprocess.
    """
    async with AsyncExitStack() as stack:
        if config.transport == "http":
            headers = {"Authorization": f"Bearer {config.token}"} if config.token else None
            read_stream, write_stream, _ = await stack.enter_async_context(
                streamablehttp_client(config.url, headers=headers)
            )
            logger.info(f"Connecting to MCP tool server at {config.url}")
        else:
            command, *args = config.command
            params = StdioServerParameters(command=command, args=args)
            read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
            logger.info(f"Spawned MCP tool server: {' '.join(config.command)}")

        session = await stack.enter_async_context(
            ClientSession(
                read_stream,
                write_stream,
                client_info=Implementation(name=CLIENT_NAME, version=__version__),
            )
        )
        await session.initialize()
        logger.info("MCP server connected")
        yield session