"""Agent loop alternating model calls and tool calls until a final answer."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, assert_never

from toolrelay.errors import LoopBudgetExceeded, UpstreamModelError
from toolrelay.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMResponse,
    LLMUsage,
    TextBlock,
    ToolDescriptor,
    ToolUseBlock,
)
from toolrelay.services.catalog import ToolCatalog
from toolrelay.services.invoker import ToolInvoker
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)


class ModelClient(Protocol):
    async def create_message(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDescriptor] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse: ...


class ExchangeState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    STREAMING_FINAL = "streaming_final"
    DONE = "done"


@dataclass
class Exchange:
    """One chat request's progress through the agent loop."""

    messages: list[LLMMessage]
    tools: list[ToolDescriptor] = field(default_factory=list)
    state: ExchangeState = ExchangeState.AWAITING_MODEL
    transitions: list[ExchangeState] = field(default_factory=lambda: [ExchangeState.AWAITING_MODEL])
    turns: int = 0
    tool_calls: int = 0
    usage: LLMUsage = field(default_factory=LLMUsage)
    final_texts: list[str] = field(default_factory=list)

    @property
    def final_text(self) -> str:
        return "".join(self.final_texts)

    def transition(self, state: ExchangeState) -> None:
        logger.debug(f"Exchange {self.state} -> {state}")
        self.state = state
        self.transitions.append(state)

    def mark_done(self) -> None:
        """Record that the final answer has been fully streamed."""
        self.transition(ExchangeState.DONE)


class Orchestrator:
    """Drives the model and the tool server until the model stops asking for tools.

    Tool calls from a single response run one at a time in the order the model
    listed them; tools may have side effects, and results must line up with
    their requests.
    """

    def __init__(
        self,
        model: ModelClient,
        catalog: ToolCatalog,
        invoker: ToolInvoker,
        max_turns: int = 10,
        max_tool_calls: int = 50,
        system_prompt: str | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            model: Model service client
            catalog: Source of the current tool list
            invoker: Executes individual tool calls
            max_turns: Maximum model calls per exchange
            max_tool_calls: Maximum tool calls per exchange
            system_prompt: Optional system prompt sent with every model call
        """
        self.model = model
        self.catalog = catalog
        self.invoker = invoker
        self.max_turns = max_turns
        self.max_tool_calls = max_tool_calls
        self.system_prompt = system_prompt

    async def run(self, messages: list[LLMMessage]) -> Exchange:
        """Run an exchange until the model produces its final answer.

        The returned exchange is in STREAMING_FINAL with ``final_texts`` holding
        the answer's text blocks in order.

        Raises:
            ToolServiceUnavailable: The tool server could not be reached
            UpstreamModelError: The model call failed
            LoopBudgetExceeded: The turn or tool-call budget ran out
        """
        tools = await self.catalog.list_tools()
        exchange = Exchange(messages=list(messages), tools=tools)
        logger.info(
            f"Starting agent loop with {len(messages)} initial messages, {len(tools)} tools, "
            f"max_turns: {self.max_turns}"
        )

        while True:
            if exchange.turns >= self.max_turns:
                logger.warning(f"Agent loop reached max turns ({self.max_turns})")
                raise LoopBudgetExceeded(
                    f"Agent loop exceeded {self.max_turns} model calls",
                    turns=exchange.turns,
                    tool_calls=exchange.tool_calls,
                )

            exchange.turns += 1
            logger.debug(f"Agent loop turn {exchange.turns}/{self.max_turns}")
            response = await self.model.create_message(exchange.messages, tools, self.system_prompt)
            exchange.usage.add(response.usage)
            logger.info(f"Response stop_reason: {response.stop_reason}")

            if not response.wants_tools:
                self._finalize(exchange, response)
                logger.info(
                    f"Agent loop completed in {exchange.turns} turns with {exchange.tool_calls} tool calls"
                )
                return exchange

            await self._execute_tools(exchange, response)

    async def _execute_tools(self, exchange: Exchange, response: LLMResponse) -> None:
        tool_uses = [block for block in response.content if isinstance(block, ToolUseBlock)]
        if not tool_uses:
            raise UpstreamModelError("Model requested tool use without any tool_use blocks")

        exchange.transition(ExchangeState.EXECUTING_TOOLS)
        logger.info(f"LLM wants to use {len(tool_uses)} tools")
        # The whole response goes into history, including any text ahead of the tool calls.
        exchange.messages.append(LLMMessage(role="assistant", content=response.content))

        results: list[ContentBlock] = []
        for tool_use in tool_uses:
            if exchange.tool_calls >= self.max_tool_calls:
                logger.warning(f"Agent loop reached max tool calls ({self.max_tool_calls})")
                raise LoopBudgetExceeded(
                    f"Agent loop exceeded {self.max_tool_calls} tool calls",
                    turns=exchange.turns,
                    tool_calls=exchange.tool_calls,
                )
            exchange.tool_calls += 1
            results.append(await self.invoker.invoke(tool_use))

        exchange.messages.append(LLMMessage(role="user", content=results))
        exchange.transition(ExchangeState.AWAITING_MODEL)

    @staticmethod
    def _finalize(exchange: Exchange, response: LLMResponse) -> None:
        texts: list[str] = []
        for block in response.content:
            match block:
                case TextBlock(text=text):
                    texts.append(text)
                case ToolUseBlock():
                    logger.warning(f"Ignoring tool_use block {block.id} in final response")
                case _:
                    assert_never(block)

        exchange.final_texts = texts
        exchange.messages.append(LLMMessage(role="assistant", content=response.content))
        exchange.transition(ExchangeState.STREAMING_FINAL)
