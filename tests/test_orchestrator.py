"""Tests for the agent loop."""

import json

import anyio
import pytest
from helpers import FakeModel, FakeToolSession, text_response, text_result, tool_use_response

from toolrelay.errors import LoopBudgetExceeded, ToolServiceUnavailable, UpstreamModelError
from toolrelay.models.llm import LLMMessage, TextBlock, ToolResultBlock, ToolUseBlock
from toolrelay.services.catalog import ToolCatalog
from toolrelay.services.invoker import ToolInvoker
from toolrelay.services.orchestrator import ExchangeState, Orchestrator


def build_orchestrator(model: FakeModel, session: FakeToolSession, **kwargs) -> Orchestrator:
    return Orchestrator(model=model, catalog=ToolCatalog(session), invoker=ToolInvoker(session), **kwargs)


def user_message(text: str) -> LLMMessage:
    return LLMMessage(role="user", content=text)


class TestFinalAnswer:
    """Tests for exchanges that end without tool use."""

    @pytest.mark.asyncio
    async def test_direct_answer_single_model_call(self, tool_session):
        """Test that a response without tool use finalizes immediately."""
        model = FakeModel([text_response("Hello there")])
        orchestrator = build_orchestrator(model, tool_session)

        exchange = await orchestrator.run([user_message("Hi")])

        assert exchange.state == ExchangeState.STREAMING_FINAL
        assert exchange.final_texts == ["Hello there"]
        assert exchange.turns == 1
        assert exchange.tool_calls == 0
        assert tool_session.calls == []

    @pytest.mark.asyncio
    async def test_text_blocks_kept_in_block_order(self, tool_session):
        """Test that every text block of the final response is kept, in order."""
        model = FakeModel([text_response("First. ", "Second.")])
        orchestrator = build_orchestrator(model, tool_session)

        exchange = await orchestrator.run([user_message("Hi")])

        assert exchange.final_texts == ["First. ", "Second."]
        assert exchange.final_text == "First. Second."

    @pytest.mark.asyncio
    async def test_tools_sent_with_every_model_call(self, tool_session):
        """Test that the catalog's tools are passed to the model."""
        model = FakeModel([text_response("ok")])
        orchestrator = build_orchestrator(model, tool_session)

        await orchestrator.run([user_message("Hi")])

        assert [tool.name for tool in model.tools_seen[0]] == ["get_alerts"]
        assert model.tools_seen[0][0].input_schema["required"] == ["state"]

    @pytest.mark.asyncio
    async def test_client_messages_not_mutated(self, tool_session):
        """Test that the caller's message list is copied, not appended to."""
        model = FakeModel([tool_use_response(("toolu_1", "get_alerts", {"state": "CA"})), text_response("done")])
        orchestrator = build_orchestrator(model, tool_session)
        messages = [user_message("CA alerts")]

        await orchestrator.run(messages)

        assert len(messages) == 1


class TestToolLoop:
    """Tests for the tool-execution loop."""

    @pytest.mark.asyncio
    async def test_alerts_scenario(self, tool_session):
        """Test a tool_use turn followed by a final answer."""
        model = FakeModel(
            [
                tool_use_response(("toolu_1", "get_alerts", {"state": "CA"})),
                text_response("There is a heat advisory in California."),
            ]
        )
        orchestrator = build_orchestrator(model, tool_session)

        exchange = await orchestrator.run([user_message("2-letter state code CA alerts")])

        assert tool_session.calls == [("get_alerts", {"state": "CA"})]
        assert exchange.final_text == "There is a heat advisory in California."
        assert exchange.turns == 2

        second_request = model.requests[1]
        assert [msg.role for msg in second_request] == ["user", "assistant", "user"]
        result = second_request[2].content[0]
        assert isinstance(result, ToolResultBlock)
        assert result.tool_use_id == "toolu_1"
        assert result.is_error is False
        assert json.loads(result.content) == [{"type": "text", "text": "Active alerts for CA:\n\nEvent: Heat Advisory"}]

    @pytest.mark.asyncio
    async def test_state_transitions(self, tool_session):
        """Test that STREAMING_FINAL is only reached after a non-tool response."""
        model = FakeModel(
            [
                tool_use_response(("toolu_1", "get_alerts", {"state": "CA"})),
                tool_use_response(("toolu_2", "get_alerts", {"state": "NY"})),
                text_response("done"),
            ]
        )
        orchestrator = build_orchestrator(model, tool_session)

        exchange = await orchestrator.run([user_message("alerts")])

        assert exchange.transitions == [
            ExchangeState.AWAITING_MODEL,
            ExchangeState.EXECUTING_TOOLS,
            ExchangeState.AWAITING_MODEL,
            ExchangeState.EXECUTING_TOOLS,
            ExchangeState.AWAITING_MODEL,
            ExchangeState.STREAMING_FINAL,
        ]
        exchange.mark_done()
        assert exchange.state == ExchangeState.DONE

    @pytest.mark.asyncio
    async def test_assistant_content_appended_verbatim(self, tool_session):
        """Test that text emitted before a tool call stays in history."""
        model = FakeModel(
            [
                tool_use_response(("toolu_1", "get_alerts", {"state": "CA"}), preamble="Let me check."),
                text_response("done"),
            ]
        )
        orchestrator = build_orchestrator(model, tool_session)

        await orchestrator.run([user_message("alerts")])

        assistant = model.requests[1][1]
        assert assistant.role == "assistant"
        assert isinstance(assistant.content[0], TextBlock)
        assert assistant.content[0].text == "Let me check."
        assert isinstance(assistant.content[1], ToolUseBlock)

    @pytest.mark.asyncio
    async def test_results_preserve_tool_use_order(self):
        """Test that results for one turn are grouped in one message, in request order."""
        session = FakeToolSession()
        model = FakeModel(
            [
                tool_use_response(
                    ("toolu_a", "get_forecast", {"latitude": 1, "longitude": 2}),
                    ("toolu_b", "get_alerts", {"state": "CA"}),
                    ("toolu_c", "get_alerts", {"state": "NY"}),
                ),
                text_response("done"),
            ]
        )
        orchestrator = build_orchestrator(model, session)

        await orchestrator.run([user_message("everything")])

        assert [name for name, _ in session.calls] == ["get_forecast", "get_alerts", "get_alerts"]
        results_message = model.requests[1][2]
        assert results_message.role == "user"
        assert [block.tool_use_id for block in results_message.content] == ["toolu_a", "toolu_b", "toolu_c"]

    @pytest.mark.asyncio
    async def test_tool_calls_run_sequentially(self):
        """Test that one call finishes before the next starts."""
        events: list[str] = []

        class SlowSession(FakeToolSession):
            async def call_tool(self, name, arguments=None):
                events.append(f"start {arguments['state']}")
                await anyio.sleep(0.01)
                events.append(f"end {arguments['state']}")
                return text_result("ok")

        model = FakeModel(
            [
                tool_use_response(("t1", "get_alerts", {"state": "CA"}), ("t2", "get_alerts", {"state": "NY"})),
                text_response("done"),
            ]
        )

        await build_orchestrator(model, SlowSession()).run([user_message("alerts")])

        assert events == ["start CA", "end CA", "start NY", "end NY"]

    @pytest.mark.asyncio
    async def test_tool_failure_is_recoverable(self):
        """Test that a raising tool yields an error result and the loop continues."""
        session = FakeToolSession(results={"get_alerts": RuntimeError("NWS exploded")})
        model = FakeModel(
            [
                tool_use_response(("toolu_1", "get_alerts", {"state": "CA"})),
                text_response("Sorry, alerts are unavailable right now."),
            ]
        )
        orchestrator = build_orchestrator(model, session)

        exchange = await orchestrator.run([user_message("CA alerts")])

        assert len(model.requests) == 2
        result = model.requests[1][2].content[0]
        assert result.is_error is True
        assert json.loads(result.content) == {"error": "NWS exploded"}
        assert exchange.final_text == "Sorry, alerts are unavailable right now."

    @pytest.mark.asyncio
    async def test_tool_reported_error_is_recoverable(self):
        """Test that an isError tool result is flagged and fed back to the model."""
        session = FakeToolSession(results={"get_alerts": text_result("Unknown tool: get_alerts", is_error=True)})
        model = FakeModel([tool_use_response(("toolu_1", "get_alerts", {"state": "CA"})), text_response("ok")])

        await build_orchestrator(model, session).run([user_message("CA alerts")])

        result = model.requests[1][2].content[0]
        assert result.is_error is True
        assert "Unknown tool" in json.loads(result.content)["error"]


class TestFailures:
    """Tests for fatal failures and loop budgets."""

    @pytest.mark.asyncio
    async def test_model_error_is_fatal(self, tool_session):
        """Test that a model failure propagates and is not retried."""
        model = FakeModel(error=UpstreamModelError("Model service error: overloaded"))
        orchestrator = build_orchestrator(model, tool_session)

        with pytest.raises(UpstreamModelError):
            await orchestrator.run([user_message("Hi")])

        assert len(model.requests) == 1

    @pytest.mark.asyncio
    async def test_catalog_unavailable_is_fatal(self):
        """Test that an unreachable tool server aborts before calling the model."""
        session = FakeToolSession(list_error=anyio.ClosedResourceError())
        model = FakeModel([text_response("unused")])

        with pytest.raises(ToolServiceUnavailable):
            await build_orchestrator(model, session).run([user_message("Hi")])

        assert model.requests == []

    @pytest.mark.asyncio
    async def test_invocation_unavailable_is_fatal(self):
        """Test that losing the tool server mid-exchange aborts the exchange."""
        session = FakeToolSession(results={"get_alerts": anyio.BrokenResourceError()})
        model = FakeModel([tool_use_response(("toolu_1", "get_alerts", {"state": "CA"})), text_response("unused")])

        with pytest.raises(ToolServiceUnavailable):
            await build_orchestrator(model, session).run([user_message("CA alerts")])

        assert len(model.requests) == 1

    @pytest.mark.asyncio
    async def test_turn_budget(self, tool_session):
        """Test that a model that never stops asking for tools hits the turn budget."""
        model = FakeModel([tool_use_response((f"toolu_{i}", "get_alerts", {"state": "CA"})) for i in range(5)])
        orchestrator = build_orchestrator(model, tool_session, max_turns=3)

        with pytest.raises(LoopBudgetExceeded) as exc_info:
            await orchestrator.run([user_message("loop forever")])

        assert exc_info.value.turns == 3
        assert len(model.requests) == 3

    @pytest.mark.asyncio
    async def test_tool_call_budget(self, tool_session):
        """Test that the tool-call budget is enforced across turns."""
        model = FakeModel(
            [
                tool_use_response(("t1", "get_alerts", {"state": "CA"}), ("t2", "get_alerts", {"state": "NY"})),
                tool_use_response(("t3", "get_alerts", {"state": "TX"}), ("t4", "get_alerts", {"state": "WA"})),
            ]
        )
        orchestrator = build_orchestrator(model, tool_session, max_tool_calls=3)

        with pytest.raises(LoopBudgetExceeded) as exc_info:
            await orchestrator.run([user_message("alerts")])

        assert exc_info.value.tool_calls == 3
        assert len(tool_session.calls) == 3

    @pytest.mark.asyncio
    async def test_tool_use_stop_without_blocks(self, tool_session):
        """Test that a tool_use stop reason with no tool_use blocks is rejected."""
        response = text_response("I will call a tool")
        response.stop_reason = "tool_use"
        model = FakeModel([response])

        with pytest.raises(UpstreamModelError):
            await build_orchestrator(model, tool_session).run([user_message("Hi")])
