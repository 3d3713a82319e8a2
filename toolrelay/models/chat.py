"""Chat endpoint request/response models."""

from datetime import datetime

from pydantic import BaseModel, Field

from toolrelay.models.llm import LLMMessage


class ChatRequest(BaseModel):
    """Request model for the chat endpoint: the full conversation so far."""

    messages: list[LLMMessage] = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    """Error payload returned before any stream frame was sent."""

    error: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
