"""Main FastAPI application for the chat relay."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolrelay import __version__
from toolrelay.api.endpoints import router
from toolrelay.clients.anthropic import AnthropicClient, AnthropicConfig
from toolrelay.clients.mcp import connect_tool_server
from toolrelay.config import RelaySettings
from toolrelay.services.catalog import ToolCatalog
from toolrelay.services.invoker import ToolInvoker
from toolrelay.services.orchestrator import Orchestrator
from toolrelay.services.stream import StreamEmitter
from toolrelay.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(settings: RelaySettings | None = None, orchestrator: Orchestrator | None = None) -> FastAPI:
    """Create the chat relay application.

    Without an explicit orchestrator, the lifespan connects to the tool server
    and builds one around a single MCP client session shared by all requests.
    """
    settings = settings or RelaySettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging()
        if app.state.orchestrator is not None:
            yield
            return

        async with connect_tool_server(settings.tool_server) as session:
            app.state.orchestrator = Orchestrator(
                model=AnthropicClient(config=AnthropicConfig.from_env()),
                catalog=ToolCatalog(session),
                invoker=ToolInvoker(session),
                max_turns=settings.max_turns,
                max_tool_calls=settings.max_tool_calls,
            )
            logger.info(f"Chat relay ready ({settings.tool_server.transport} tool server)")
            try:
                yield
            finally:
                app.state.orchestrator = None

    app = FastAPI(
        title="Tool Relay",
        description=(
            "Chat service that lets Claude answer questions by calling MCP tools, "
            "streaming the final answer as server-sent events."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "Chat",
                "description": "Run a tool-using chat exchange and stream the answer.",
            },
            {
                "name": "Health",
                "description": "Service health monitoring and status checks.",
            },
        ],
    )
    app.state.orchestrator = orchestrator
    app.state.stream_emitter = StreamEmitter(chunk_size=settings.chunk_size)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("toolrelay.main:app", host="0.0.0.0", port=RelaySettings.from_env().port, log_level="info")
