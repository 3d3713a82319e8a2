"""Shared test helpers: fakes for the model service and the MCP tool server."""

from typing import Any

from mcp.types import CallToolResult, ListToolsResult, TextContent, Tool

from toolrelay.models.llm import LLMMessage, LLMResponse, LLMUsage, TextBlock, ToolDescriptor, ToolUseBlock

ALERTS_SCHEMA = {
    "type": "object",
    "properties": {"state": {"type": "string", "minLength": 2, "maxLength": 2}},
    "required": ["state"],
}


def text_response(*texts: str) -> LLMResponse:
    return LLMResponse(
        content=[TextBlock(text=text) for text in texts],
        stop_reason="end_turn",
        usage=LLMUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        model="claude-test",
    )


def tool_use_response(*calls: tuple[str, str, dict[str, Any]], preamble: str | None = None) -> LLMResponse:
    content: list[TextBlock | ToolUseBlock] = []
    if preamble:
        content.append(TextBlock(text=preamble))
    content.extend(ToolUseBlock(id=call_id, name=name, input=args) for call_id, name, args in calls)
    return LLMResponse(
        content=content,
        stop_reason="tool_use",
        usage=LLMUsage(input_tokens=20, output_tokens=10, total_tokens=30),
        model="claude-test",
    )


class FakeModel:
    """Model client replaying scripted responses and recording every request."""

    def __init__(self, responses: list[LLMResponse] | None = None, error: Exception | None = None):
        self.responses = list(responses or [])
        self.error = error
        self.requests: list[list[LLMMessage]] = []
        self.tools_seen: list[list[ToolDescriptor] | None] = []

    async def create_message(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDescriptor] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        self.requests.append(list(messages))
        self.tools_seen.append(tools)
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise AssertionError("FakeModel ran out of scripted responses")
        return self.responses.pop(0)


class FakeToolSession:
    """Stand-in for mcp.ClientSession with per-tool canned results or exceptions."""

    def __init__(
        self,
        tools: list[Tool] | None = None,
        results: dict[str, CallToolResult | Exception] | None = None,
        list_error: BaseException | None = None,
    ):
        self.tools = tools if tools is not None else [
            Tool(name="get_alerts", description="Get weather alerts for a state", inputSchema=ALERTS_SCHEMA)
        ]
        self.results = results or {}
        self.list_error = list_error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def list_tools(self) -> ListToolsResult:
        if self.list_error is not None:
            raise self.list_error
        return ListToolsResult(tools=self.tools)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> CallToolResult:
        self.calls.append((name, arguments or {}))
        outcome = self.results.get(name)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return CallToolResult(content=[TextContent(type="text", text=f"{name} ok")], isError=False)
        return outcome


def text_result(text: str, is_error: bool = False) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)

