"""API endpoints for the chat relay."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from toolrelay import __version__
from toolrelay.errors import ToolRelayError
from toolrelay.models.chat import ChatRequest, ErrorResponse, HealthResponse
from toolrelay.services.orchestrator import Exchange, Orchestrator
from toolrelay.services.stream import StreamEmitter, error_frame
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_stream_emitter(request: Request) -> StreamEmitter:
    return request.app.state.stream_emitter


@router.post(
    "/api/chat",
    tags=["Chat"],
    response_class=StreamingResponse,
    responses={500: {"model": ErrorResponse}},
)
async def chat(
    request: ChatRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    emitter: StreamEmitter = Depends(get_stream_emitter),
):
    """Run the agent loop over the conversation and stream the final answer as SSE.

    The whole exchange completes before the first frame, so any failure in the
    loop is reported as a JSON error instead of a stream.
    """
    logger.info(f"Chat request with {len(request.messages)} messages")
    try:
        exchange = await orchestrator.run(request.messages)
    except ToolRelayError as e:
        logger.error(f"Exchange failed: {type(e).__name__}: {e}")
        return JSONResponse(ErrorResponse(error=str(e)).model_dump(), status_code=500)
    except Exception as e:
        logger.error(f"Unexpected error during exchange: {e}", exc_info=True)
        return JSONResponse(ErrorResponse(error=str(e)).model_dump(), status_code=500)

    return StreamingResponse(
        stream_exchange(exchange, emitter),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def stream_exchange(exchange: Exchange, emitter: StreamEmitter) -> AsyncIterator[str]:
    """Yield the exchange's answer frames; a failure ends the stream with one error frame."""
    try:
        for frame in emitter.frames(exchange.final_texts):
            yield frame
    except Exception as e:
        logger.error(f"Streaming failed: {e}", exc_info=True)
        yield error_frame(str(e))
        return
    exchange.mark_done()


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
