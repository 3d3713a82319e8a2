"""MCP session endpoint: one streamable HTTP transport per client session."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server.lowlevel import Server
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Receive, Scope, Send

from toolrelay.errors import AuthorizationError, TransportError
from toolrelay.services.session_registry import SessionRegistry
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)


def validate_authorization_header(auth_header: str | None) -> str:
    """Return the bearer token from an Authorization header.

    Only presence is checked; the token itself is not verified here.

    Raises:
        AuthorizationError: Header missing, not a Bearer header, or empty token
    """
    if not auth_header:
        raise AuthorizationError("Missing Authorization header")
    if not auth_header.startswith("Bearer "):
        raise AuthorizationError("Authorization header must use the Bearer scheme")

    token = auth_header[len("Bearer ") :]
    if not token.strip():
        raise AuthorizationError("Bearer token is empty")
    return token


class SessionTransports:
    """Opens streamable HTTP transports, each serving the MCP server in a background task.

    Tasks live in a task group that only exists inside ``run()``, which the
    app lifespan enters.
    """

    def __init__(self, server: Server):
        self.server = server
        self._task_group: TaskGroup | None = None

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield
            finally:
                tg.cancel_scope.cancel()
                self._task_group = None

    async def open(self, session_id: str) -> StreamableHTTPServerTransport:
        """Create a transport bound to session_id and start serving it.

        Raises:
            ValueError: session_id is not a valid MCP session id
        """
        if self._task_group is None:
            raise RuntimeError("Session transports are not running")

        transport = StreamableHTTPServerTransport(mcp_session_id=session_id, is_json_response_enabled=False)

        async def serve(*, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
            async with transport.connect() as (read_stream, write_stream):
                task_status.started()
                try:
                    await self.server.run(read_stream, write_stream, self.server.create_initialization_options())
                except Exception as e:
                    # A crashed session must not take the task group, and every other session, down with it.
                    logger.error(f"MCP server for session {session_id} crashed: {e}", exc_info=True)

        await self._task_group.start(serve)
        return transport

    async def close(self, transport: StreamableHTTPServerTransport) -> None:
        await transport.terminate()


class ToolSessionEndpoint:
    """ASGI endpoint routing each request to its session's transport.

    Unauthorized requests are answered before the registry is touched.
    """

    def __init__(self, registry: SessionRegistry[StreamableHTTPServerTransport]):
        self.registry = registry

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)

        try:
            validate_authorization_header(request.headers.get("authorization"))
        except AuthorizationError as e:
            logger.warning(f"Rejected unauthorized MCP request: {e}")
            response = JSONResponse(
                {"error": "Unauthorized", "message": "Valid Authorization header with Bearer token is required"},
                status_code=401,
            )
            await response(scope, receive, send)
            return

        try:
            session = await self.registry.get_or_create(request.headers.get(MCP_SESSION_ID_HEADER))
        except ValueError as e:
            await JSONResponse({"error": str(e)}, status_code=400)(scope, receive, send)
            return

        try:
            self._check_transport(session.session_id, session.transport)
        except TransportError as e:
            logger.warning(str(e))
            await self.registry.evict(e.session_id)
            await JSONResponse({"error": str(e)}, status_code=404)(scope, receive, send)
            return

        await session.transport.handle_request(scope, receive, send)

    @staticmethod
    def _check_transport(session_id: str, transport: StreamableHTTPServerTransport) -> None:
        if transport.is_terminated:
            raise TransportError(session_id, f"Transport for session {session_id} has been terminated")
