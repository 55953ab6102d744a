"""Bounded tool-calling conversation with the orchestration agent.

One ``AgentLoop.run`` call drives a single conversation: the task message is
sent, tool calls are dispatched sequentially in request order, and every
tool call is answered by exactly one tool result before the next request.
The loop ends when the agent stops asking for tools, when the turn ceiling
is hit, or after one final turn once the tool-call budget is spent.

The loop keeps only the transcript and a turn counter. Everything durable
happens in the shared ``OrchestratorContext`` through the tool handlers.
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from typing import Mapping, Optional, Sequence

from pagesmith.config.orchestrator import OrchestratorConfig, get_config
from pagesmith.core.llm_provider import (
    AgentClient,
    AgentMessage,
    AgentRequest,
    AgentResponse,
    StopReason,
    ToolCall,
    ToolDefinition,
    ToolResult,
)
from pagesmith.core.orchestrator.context import OrchestratorContext
from pagesmith.core.orchestrator.tools import ToolFunc
from pagesmith.core.resilience import SleepFunc, async_retry_with_backoff, heartbeat

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    """States of one agent conversation.

    AWAITING_AGENT: A request is in flight (the only suspension on the agent)
    DISPATCHING_TOOLS: Running the tool calls of the latest response
    BUDGET_EXHAUSTED: Answering pending calls with budget errors
    DONE: The latest response is final
    """

    AWAITING_AGENT = "awaiting_agent"
    DISPATCHING_TOOLS = "dispatching_tools"
    BUDGET_EXHAUSTED = "budget_exhausted"
    DONE = "done"


def budget_exhausted_message(max_tool_calls: int) -> str:
    return (
        f"BUDGET EXHAUSTED: You have used all {max_tool_calls} tool calls. "
        "Stop now and provide your final summary."
    )


class AgentLoop:
    """Runs bounded conversations against one context and tool registry."""

    def __init__(
        self,
        agent: AgentClient,
        *,
        context: OrchestratorContext,
        system_prompt: str,
        tools: Sequence[ToolDefinition],
        registry: Mapping[str, ToolFunc],
        model: Optional[str] = None,
        config: Optional[OrchestratorConfig] = None,
        rng: Optional[random.Random] = None,
        sleep_func: Optional[SleepFunc] = None,
    ):
        self.agent = agent
        self.context = context
        self.system_prompt = system_prompt
        self.tools = list(tools)
        self.registry = registry
        self.config = config or get_config()
        self.model = model or self.config.orchestrator_model
        self._rng = rng
        self._sleep_func = sleep_func

    async def run(self, task_message: str) -> str:
        """Run one conversation seeded with *task_message*.

        Returns:
            The newline-joined text blocks of the final agent response

        Raises:
            LLMError: If the agent service fails beyond the retry budget
        """
        ctx = self.context
        max_turns = self.config.max_tool_turns
        messages: list[AgentMessage] = [AgentMessage.user_text(task_message)]
        state = LoopState.AWAITING_AGENT
        response: Optional[AgentResponse] = None
        tool_turns = 0
        final_turn = False

        while state is not LoopState.DONE:
            if state is LoopState.AWAITING_AGENT:
                response = await self._request(messages)
                if final_turn or response.stop_reason != StopReason.TOOL_CALLS or not response.tool_calls:
                    state = LoopState.DONE
                elif tool_turns >= max_turns:
                    logger.warning("Tool turn ceiling reached (%d turns), stopping", max_turns)
                    state = LoopState.DONE
                elif ctx.budget_exhausted:
                    state = LoopState.BUDGET_EXHAUSTED
                else:
                    state = LoopState.DISPATCHING_TOOLS

            elif state is LoopState.DISPATCHING_TOOLS:
                assert response is not None
                tool_turns += 1
                calls = response.tool_calls
                logger.info(
                    "Tool call %d: %s",
                    ctx.tool_call_count + 1,
                    ", ".join(call.name for call in calls),
                )
                # Sequential: a handler may depend on state the previous one changed
                results = [await self._dispatch(call) for call in calls]
                messages.append(response.to_message())
                messages.append(AgentMessage.tool_results(results))
                state = LoopState.AWAITING_AGENT

            elif state is LoopState.BUDGET_EXHAUSTED:
                assert response is not None
                logger.warning(
                    "Tool-call budget exhausted (%d/%d)",
                    ctx.tool_call_count,
                    ctx.budget.max_tool_calls,
                )
                message = budget_exhausted_message(ctx.budget.max_tool_calls)
                results = [
                    ToolResult(tool_call_id=call.id, content=message, is_error=True)
                    for call in response.tool_calls
                ]
                messages.append(response.to_message())
                messages.append(AgentMessage.tool_results(results))
                final_turn = True
                state = LoopState.AWAITING_AGENT

        assert response is not None
        return response.text

    async def _request(self, messages: list[AgentMessage]) -> AgentResponse:
        request = AgentRequest(
            system_prompt=self.system_prompt,
            tools=self.tools,
            messages=list(messages),
            model=self.model,
            max_tokens=self.config.agent_max_tokens,
        )
        label = f"orchestrator({self.model})"

        async def attempt() -> AgentResponse:
            async with heartbeat(label, self.config.heartbeat_interval):
                return await self.agent.send(request)

        return await async_retry_with_backoff(
            attempt,
            max_retries=self.config.agent_max_retries,
            base_delay=self.config.agent_retry_base_delay,
            max_delay=self.config.agent_retry_max_delay,
            label=label,
            rng=self._rng,
            sleep_func=self._sleep_func,
        )

    async def _dispatch(self, call: ToolCall) -> ToolResult:
        handler = self.registry.get(call.name)
        if handler is None:
            logger.warning("Agent requested unknown tool '%s'", call.name)
            return ToolResult(tool_call_id=call.id, content=f"Unknown tool: {call.name}")
        try:
            content = await handler(call.input or {})
        except Exception as exc:
            logger.warning("Tool %s raised: %s", call.name, exc)
            content = f"Error: {exc}"
        logger.debug("Tool %s result: %s", call.name, content[:200])
        return ToolResult(tool_call_id=call.id, content=content)


__all__ = ["AgentLoop", "LoopState", "budget_exhausted_message"]
