"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    class Config:
        extra = "ignore"  # Ignore any additional fields from Anthropic


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    class Config:
        extra = "ignore"  # Ignore any additional fields from Anthropic


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    class Config:
        extra = "ignore"  # Ignore any additional fields from Anthropic


ContentBlock = Annotated[TextBlock | ToolUseBlock | ToolResultBlock, Field(discriminator="type")]


class LLMMessage(BaseModel):
    """A message in the running conversation.

    Plain string content is accepted from clients and normalized to a single
    text block, so downstream code only ever sees block lists.
    """

    role: Literal["user", "assistant"]
    content: list[ContentBlock]

    @field_validator("content", mode="before")
    @classmethod
    def normalize_content(cls, v: Any) -> Any:
        """Wrap bare string content in a text block."""
        if isinstance(v, str):
            return [{"type": "text", "text": v}]
        return v

    def tool_use_blocks(self) -> list[ToolUseBlock]:
        """Return the tool_use blocks of this message in order."""
        return [block for block in self.content if isinstance(block, ToolUseBlock)]


class ToolDescriptor(BaseModel):
    """A tool as advertised to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class LLMUsage:
    """Token/resource usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def add(self, other: "LLMUsage") -> None:
        """Accumulate another usage record into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens


@dataclass
class LLMResponse:
    """Provider-agnostic response from the model service."""

    content: list[TextBlock | ToolUseBlock]
    stop_reason: str | None
    usage: LLMUsage = field(default_factory=LLMUsage)
    model: str = ""
    provider: str = "anthropic"

    @property
    def wants_tools(self) -> bool:
        return self.stop_reason == "tool_use"
