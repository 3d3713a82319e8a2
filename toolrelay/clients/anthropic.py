"""Anthropic API client with rate limiting and error handling."""

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Any, Literal

import anthropic
import tiktoken
from anthropic import AsyncAnthropic
from anthropic.types import ContentBlock as AnthropicContentBlock
from anthropic.types import Message
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel, ValidationError

from toolrelay.errors import UpstreamModelError
from toolrelay.models.llm import LLMMessage, LLMResponse, LLMUsage, TextBlock, ToolDescriptor, ToolUseBlock
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)

MIN_RATE_LIMIT_WAIT = 0.05


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: list[dict[str, Any]]

    @classmethod
    def from_llm_message(cls, message: LLMMessage) -> "AnthropicMessage":
        return cls(role=message.role, content=[block.model_dump() for block in message.content])


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]

    @classmethod
    def from_descriptor(cls, descriptor: ToolDescriptor) -> "AnthropicTool":
        return cls(name=descriptor.name, description=descriptor.description, input_schema=descriptor.input_schema)


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    # Model failures are fatal to an exchange; the SDK must not retry on its own.
    max_retries: int = 0

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    @classmethod
    def from_env(cls) -> "AnthropicConfig":
        return cls(
            model=os.getenv("ANTHROPIC_MODEL", cls.model),
            max_tokens=int(os.getenv("ANTHROPIC_MAX_TOKENS", cls.max_tokens)),
        )


class AnthropicRateLimiter:
    """Moving-window request and token rate limiter."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within both limits.

        A request estimated above the per-minute token limit is counted as a
        full window, since no window could ever hold it.
        """
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        while not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        cost = min(estimated_tokens, self.token_limit.amount)
        if cost < estimated_tokens:
            logger.warning(
                f"Estimated {estimated_tokens} tokens exceeds the {self.token_limit.amount}/minute limit, "
                f"counting it as {cost}"
            )

        token_identifier = f"{identifier}_tokens"
        while not self.limiter.hit(self.token_limit, token_identifier, cost=cost):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        # reset_time is an epoch timestamp
        wait_time = max(MIN_RATE_LIMIT_WAIT, window_stats.reset_time - time.time())
        logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
        await asyncio.sleep(wait_time)


class AnthropicClient:
    """Low-level Anthropic API client with rate limiting and error handling."""

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig
    rate_limiter: AnthropicRateLimiter

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.config = config or AnthropicConfig()
        self.client = AsyncAnthropic(api_key=anthropic_api_key, max_retries=self.config.max_retries)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        # Initialize tokenizer for token estimation
        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def create_message(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDescriptor] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Send the conversation to Claude and return its structured reply.

        Raises:
            UpstreamModelError: The API call failed or the reply could not be parsed
        """
        anthropic_messages = [AnthropicMessage.from_llm_message(msg) for msg in messages]
        anthropic_tools = [AnthropicTool.from_descriptor(tool) for tool in tools or []]

        estimated_tokens = self._estimate_tokens(anthropic_messages, system_prompt or "")
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": [msg.model_dump() for msg in anthropic_messages],
        }
        if anthropic_tools:
            request_params["tools"] = [tool.model_dump() for tool in anthropic_tools]
        if system_prompt:
            request_params["system"] = system_prompt

        logger.debug(
            f"Creating message with {len(anthropic_messages)} messages, {len(anthropic_tools)} tools, "
            f"model: {self.config.model}"
        )
        try:
            response: Message = await self.client.messages.create(**request_params)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API call failed: {e}")
            raise UpstreamModelError(f"Model service error: {e}") from e

        usage = LLMUsage()
        if response.usage:
            usage = LLMUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
                cache_creation_input_tokens=response.usage.cache_creation_input_tokens or 0,
                cache_read_input_tokens=response.usage.cache_read_input_tokens or 0,
            )

        logger.debug(
            f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(response.content)}"
        )

        return LLMResponse(
            content=self._convert_content_blocks(response.content),
            stop_reason=response.stop_reason,
            usage=usage,
            model=response.model,
        )

    def _convert_content_blocks(self, anthropic_content: list[AnthropicContentBlock]) -> list[TextBlock | ToolUseBlock]:
        """Convert Anthropic content blocks to our block types."""
        converted_blocks: list[TextBlock | ToolUseBlock] = []
        for block in anthropic_content:
            block_dict = block.model_dump()
            try:
                if block_dict.get("type") == "text":
                    converted_blocks.append(TextBlock.model_validate(block_dict))
                elif block_dict.get("type") == "tool_use":
                    converted_blocks.append(ToolUseBlock.model_validate(block_dict))
                else:
                    logger.warning(f"Unknown content block type: {block_dict.get('type')}")
            except ValidationError as e:
                raise UpstreamModelError(f"Unparseable {block_dict.get('type')} block from model service") from e

        return converted_blocks

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt

        for message in messages:
            for item in message.content:
                if "text" in item:
                    text_content += item["text"]
                elif "content" in item:
                    text_content += str(item["content"])

        return self.estimate_text_tokens(text_content)

    def estimate_text_tokens(self, text: str) -> int:
        """Estimate token count for a piece of text."""
        try:
            return len(self.tokenizer.encode(text)) if self.tokenizer else len(text) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(text) // 4
