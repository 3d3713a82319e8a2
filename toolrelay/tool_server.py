"""Weather MCP tool server: streamable HTTP with per-session transports, or stdio."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

import anyio
import click
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mcp.server.stdio import stdio_server

from toolrelay import __version__
from toolrelay.api.mcp import SessionTransports, ToolSessionEndpoint
from toolrelay.config import ToolServerSettings
from toolrelay.services.session_registry import SessionRegistry
from toolrelay.tools import ToolsRegistry
from toolrelay.tools.weather import NWSClient
from toolrelay.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)


def build_tools_registry(settings: ToolServerSettings) -> ToolsRegistry:
    return ToolsRegistry(NWSClient(base_url=settings.nws_api_base, user_agent=settings.user_agent))


def create_app(settings: ToolServerSettings | None = None, tools: ToolsRegistry | None = None) -> FastAPI:
    """Create the tool server application.

    Args:
        settings: Server settings (defaults to environment)
        tools: Tools registry (defaults to the weather tools)
    """
    settings = settings or ToolServerSettings.from_env()
    tools = tools or build_tools_registry(settings)
    transports = SessionTransports(tools.build_server())
    session_registry = SessionRegistry(
        factory=transports.open,
        idle_window=timedelta(seconds=settings.session_idle_seconds),
        on_evict=transports.close,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with transports.run():
            logger.info(f"Weather MCP server ready with tools: {tools.get_tool_names()}")
            try:
                yield
            finally:
                await session_registry.close()
                await tools.nws.aclose()

    app = FastAPI(
        title="Weather MCP Server",
        description="MCP tool server exposing National Weather Service alerts and forecasts.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_registry = session_registry
    app.state.tools = tools

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["mcp-session-id"],
    )

    app.add_route("/mcp", ToolSessionEndpoint(session_registry), methods=["GET", "POST", "DELETE"])

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint (no authorization required)."""
        return {"status": "ok", "service": "weather-mcp"}

    return app


async def run_stdio(tools: ToolsRegistry) -> None:
    server = tools.build_server()
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await tools.nws.aclose()


@click.command()
@click.option("--port", type=int, default=None, help="HTTP port (default: PORT or 3002)")
@click.option("--stdio", "use_stdio", is_flag=True, help="Serve over stdin/stdout instead of HTTP")
def main(port: int | None, use_stdio: bool) -> None:
    """Run the weather MCP tool server."""
    settings = ToolServerSettings.from_env()
    # stdout belongs to the MCP stream in stdio mode
    setup_logging(LogConfig(level=os.getenv("LOG_LEVEL", "INFO"), use_stderr=True))

    if use_stdio:
        tools = build_tools_registry(settings)
        logger.info("Weather MCP server running on stdio")
        anyio.run(run_stdio, tools)
        return

    port = port or settings.port
    logger.info(f"Weather MCP server running on http://localhost:{port}, MCP endpoint: /mcp")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")


app = create_app()


if __name__ == "__main__":
    main()
