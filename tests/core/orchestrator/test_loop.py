"""Tests for the bounded agent conversation loop."""

import pytest

from pagesmith.core.errors import AuthenticationError, LLMError
from pagesmith.core.llm_provider import AgentResponse, ChatRole, StopReason, TextBlock, ToolResult
from pagesmith.core.orchestrator.loop import AgentLoop, budget_exhausted_message
from pagesmith.core.orchestrator.tools import ToolHandlers, build_tool_definitions, build_tool_registry

from tests.core.orchestrator.conftest import (
    FakeAgent,
    make_collaborators,
    make_config,
    make_context,
    text_response,
    tool_call,
    tool_response,
)


def make_loop(agent, *, tier="standard", registry=None, **config_overrides):
    config = make_config(**config_overrides)
    ctx = make_context(tier=tier)
    handlers = ToolHandlers(ctx, make_collaborators(), config=config)
    if registry is None:
        registry = build_tool_registry(handlers, ctx.budget.enabled_tools)
    loop = AgentLoop(
        agent,
        context=ctx,
        system_prompt="You are a test editor.",
        tools=build_tool_definitions(ctx.budget.enabled_tools),
        registry=registry,
        config=config,
    )
    return loop, ctx


def results_of(request) -> list[ToolResult]:
    """Tool results in the last turn of a request."""
    last = request.messages[-1]
    assert last.role == ChatRole.USER
    return [block for block in last.content if isinstance(block, ToolResult)]


class TestConversation:
    @pytest.mark.asyncio
    async def test_final_text_without_tools(self):
        agent = FakeAgent([text_response("Nothing to do.", "Page is fine.")])
        loop, ctx = make_loop(agent)

        summary = await loop.run("Improve the page.")

        assert summary == "Nothing to do.\nPage is fine."
        assert len(agent.requests) == 1
        assert ctx.tool_call_count == 0

    @pytest.mark.asyncio
    async def test_every_tool_call_answered_in_order(self):
        calls = [
            tool_call("read_page", "call_a"),
            tool_call("get_page_metrics", "call_b"),
            tool_call("split_into_sections", "call_c"),
        ]
        agent = FakeAgent([tool_response(*calls, text="Let me look.")])
        loop, ctx = make_loop(agent)

        summary = await loop.run("Improve the page.")

        assert summary == "Done."
        assert ctx.tool_call_count == 3
        second = agent.requests[1]
        assert [r.tool_call_id for r in results_of(second)] == ["call_a", "call_b", "call_c"]
        assert second.messages[1].role == ChatRole.ASSISTANT
        assert second.messages[1].content[0] == TextBlock(text="Let me look.")
        assert all(not r.is_error for r in results_of(second))

    @pytest.mark.asyncio
    async def test_request_shape(self):
        agent = FakeAgent()
        loop, _ = make_loop(agent, orchestrator_model="model-x", agent_max_tokens=1234)

        await loop.run("Task.")

        request = agent.requests[0]
        assert request.model == "model-x"
        assert request.max_tokens == 1234
        assert request.system_prompt == "You are a test editor."
        assert "run_research" in [tool.name for tool in request.tools]
        assert request.messages[0].content == [TextBlock(text="Task.")]

    @pytest.mark.asyncio
    async def test_transcript_is_not_shared_between_requests(self):
        agent = FakeAgent([tool_response(tool_call("read_page"))])
        loop, _ = make_loop(agent)
        await loop.run("Task.")
        assert len(agent.requests[0].messages) == 1
        assert len(agent.requests[1].messages) == 3

    @pytest.mark.asyncio
    async def test_max_tokens_stop_ends_conversation(self):
        response = AgentResponse(stop_reason=StopReason.MAX_TOKENS, content=[TextBlock(text="Trunc")])
        agent = FakeAgent([response])
        loop, _ = make_loop(agent)
        assert await loop.run("Task.") == "Trunc"
        assert len(agent.requests) == 1


class TestToolFailures:
    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        agent = FakeAgent([tool_response(tool_call("teleport", "call_x"))])
        loop, ctx = make_loop(agent)

        await loop.run("Task.")

        (result,) = results_of(agent.requests[1])
        assert result.tool_call_id == "call_x"
        assert result.content == "Unknown tool: teleport"
        assert ctx.tool_call_count == 0

    @pytest.mark.asyncio
    async def test_tool_disabled_for_tier_is_unknown(self):
        agent = FakeAgent([tool_response(tool_call("run_research", topic="x"))])
        loop, _ = make_loop(agent, tier="polish")
        await loop.run("Task.")
        assert results_of(agent.requests[1])[0].content == "Unknown tool: run_research"

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_text(self):
        async def broken(tool_input):
            raise RuntimeError("disk on fire")

        agent = FakeAgent([tool_response(tool_call("read_page"), tool_call("read_page"))])
        loop, _ = make_loop(agent, registry={"read_page": broken})

        summary = await loop.run("Task.")

        assert summary == "Done."
        assert [r.content for r in results_of(agent.requests[1])] == ["Error: disk on fire"] * 2


class TestBudget:
    @pytest.mark.asyncio
    async def test_exhausted_budget_answers_with_errors(self):
        agent = FakeAgent(
            [
                tool_response(tool_call("read_page", "late_1"), tool_call("get_page_metrics", "late_2")),
                tool_response(tool_call("read_page", "ignored")),
            ]
        )
        loop, ctx = make_loop(agent, tier="polish")
        for _ in range(12):
            ctx.record_tool_call("read_page", 0.0)

        summary = await loop.run("Task.")

        results = results_of(agent.requests[1])
        assert [r.tool_call_id for r in results] == ["late_1", "late_2"]
        assert all(r.is_error for r in results)
        assert results[0].content == budget_exhausted_message(12)
        assert results[0].content == (
            "BUDGET EXHAUSTED: You have used all 12 tool calls. Stop now and provide your final summary."
        )
        # The post-exhaustion response ends the conversation even with tool calls
        assert len(agent.requests) == 2
        assert summary == ""
        assert ctx.tool_call_count == 12

    @pytest.mark.asyncio
    async def test_budget_checked_per_batch(self):
        batch = [tool_call("read_page") for _ in range(3)]
        agent = FakeAgent([tool_response(*batch), tool_response(tool_call("read_page")), text_response("Bye.")])
        loop, ctx = make_loop(agent, tier="polish")
        for _ in range(11):
            ctx.record_tool_call("read_page", 0.0)

        summary = await loop.run("Task.")

        assert ctx.tool_call_count == 14
        assert results_of(agent.requests[2])[0].is_error
        assert summary == "Bye."

    @pytest.mark.asyncio
    async def test_turn_ceiling(self):
        agent = FakeAgent([tool_response(tool_call("read_page")) for _ in range(5)])
        loop, ctx = make_loop(agent, tier="deep", max_tool_turns=2)

        await loop.run("Task.")

        assert ctx.tool_call_count == 2
        assert len(agent.requests) == 3


class TestAgentFailures:
    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        agent = FakeAgent(
            [
                LLMError("overloaded", provider="fake", retryable=True, status_code=529),
                TimeoutError("slow"),
                text_response("Recovered."),
            ]
        )
        loop, _ = make_loop(agent)
        assert await loop.run("Task.") == "Recovered."
        assert len(agent.requests) == 3

    @pytest.mark.asyncio
    async def test_fatal_error_propagates(self):
        agent = FakeAgent([AuthenticationError(provider="fake")])
        loop, _ = make_loop(agent)
        with pytest.raises(AuthenticationError):
            await loop.run("Task.")
        assert len(agent.requests) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        errors = [LLMError("overloaded", retryable=True) for _ in range(3)]
        agent = FakeAgent([*errors, text_response("never")])
        loop, _ = make_loop(agent, agent_max_retries=2)
        with pytest.raises(LLMError, match="overloaded"):
            await loop.run("Task.")
        assert len(agent.requests) == 3
