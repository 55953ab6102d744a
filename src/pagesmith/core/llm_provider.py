"""
Reasoning-agent service abstraction for pagesmith.

Provides a provider-neutral shape for a tool-calling conversation: the agent
receives a system instruction, the declared tools and the transcript, and
answers either with final text or with one or more tool-call requests. For
every tool call the caller must send back exactly one ``ToolResult`` before
the next request.

Example:
    from pagesmith.core.llm_provider import AgentClient, AgentRequest, AgentResponse

    class MyAgent(AgentClient):
        name = "my-agent"

        async def send(self, request: AgentRequest) -> AgentResponse:
            # Implementation
            pass
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pagesmith.core.errors.llm import InvalidRequestError

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class ChatRole(str, Enum):
    """Role of a turn in the transcript.

    USER: Task messages and tool-result turns
    ASSISTANT: Agent responses (text and tool-call requests)
    """

    USER = "user"
    ASSISTANT = "assistant"


class StopReason(str, Enum):
    """Reason why the agent stopped generating.

    FINISHED: Natural completion, the response carries final text
    TOOL_CALLS: The agent wants one or more tools executed
    MAX_TOKENS: Hit the output token limit (treated as finished)
    """

    FINISHED = "finished"
    TOOL_CALLS = "tool_calls"
    MAX_TOKENS = "max_tokens"


# =============================================================================
# Data Classes - Content blocks
# =============================================================================


@dataclass
class TextBlock:
    """A text segment of an agent or user turn."""

    text: str


@dataclass
class ToolCall:
    """A tool call requested by the agent.

    Attributes:
        id: Opaque identifier, echoed back in the matching ToolResult
        name: Name of the tool to call
        input: Structured (already decoded) arguments
    """

    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """The caller's answer to one ToolCall.

    Attributes:
        tool_call_id: ID of the ToolCall this responds to
        content: Textual result
        is_error: Whether the result reports a failure
    """

    tool_call_id: str
    content: str
    is_error: bool = False


ContentBlock = Union[TextBlock, ToolCall, ToolResult]


@dataclass
class AgentMessage:
    """A turn in the transcript."""

    role: ChatRole
    content: List[ContentBlock]

    @classmethod
    def user_text(cls, text: str) -> "AgentMessage":
        return cls(role=ChatRole.USER, content=[TextBlock(text=text)])

    @classmethod
    def tool_results(cls, results: List[ToolResult]) -> "AgentMessage":
        return cls(role=ChatRole.USER, content=list(results))


@dataclass
class ToolDefinition:
    """A tool declared to the agent.

    Attributes:
        name: Stable tool name
        description: Capability description consumed by the agent
        input_schema: JSON schema of the tool input
    """

    name: str
    description: str
    input_schema: Dict[str, Any]


# =============================================================================
# Data Classes - Requests / Responses
# =============================================================================


@dataclass
class TokenUsage:
    """Token usage statistics."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class AgentRequest:
    """One request to the agent service.

    Attributes:
        system_prompt: System instruction
        tools: Declared tools
        messages: Transcript so far
        model: Model identifier (optional, uses provider default)
        max_tokens: Maximum tokens to generate
    """

    system_prompt: str
    tools: List[ToolDefinition]
    messages: List[AgentMessage]
    model: Optional[str] = None
    max_tokens: int = 16_000


@dataclass
class AgentResponse:
    """Response from the agent service.

    Attributes:
        stop_reason: Why generation stopped
        content: Text and tool-call blocks in the order produced
        usage: Token usage statistics
        model: Model that generated the response
    """

    stop_reason: StopReason
    content: List[ContentBlock] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: Optional[str] = None

    @property
    def tool_calls(self) -> List[ToolCall]:
        return [block for block in self.content if isinstance(block, ToolCall)]

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))

    def to_message(self) -> AgentMessage:
        """Return this response as an assistant transcript turn."""
        return AgentMessage(role=ChatRole.ASSISTANT, content=list(self.content))


# =============================================================================
# Abstract Base Class
# =============================================================================


class AgentClient(ABC):
    """Abstract base class for reasoning-agent services.

    Attributes:
        name: Provider name (e.g., 'anthropic')
        default_model: Default model to use if not specified in requests
    """

    name: str = "base"
    default_model: str = ""

    @abstractmethod
    async def send(self, request: AgentRequest) -> AgentResponse:
        """Send the transcript and return the agent's next turn.

        Raises:
            LLMError: On API or generation errors (``retryable`` marks
                transient failures)
        """
        pass

    def get_model(self, requested: Optional[str] = None) -> str:
        return requested or self.default_model

    def validate_request(self, request: AgentRequest) -> None:
        """Validate a request before sending.

        Checks the tool-result protocol: every tool call in an assistant turn
        must be answered, in the next user turn, by exactly one result.

        Raises:
            InvalidRequestError: If request is invalid
        """
        if not request.messages:
            raise InvalidRequestError("Messages cannot be empty", provider=self.name)
        if request.max_tokens < 1:
            raise InvalidRequestError("max_tokens must be positive", provider=self.name, param="max_tokens")

        for index, message in enumerate(request.messages):
            if message.role != ChatRole.ASSISTANT:
                continue
            call_ids = [block.id for block in message.content if isinstance(block, ToolCall)]
            if not call_ids:
                continue
            if index + 1 >= len(request.messages):
                raise InvalidRequestError(
                    f"Tool calls {call_ids} have no tool-result turn",
                    provider=self.name,
                )
            answer = request.messages[index + 1]
            result_ids = [block.tool_call_id for block in answer.content if isinstance(block, ToolResult)]
            if sorted(result_ids) != sorted(call_ids):
                raise InvalidRequestError(
                    f"Tool-result ids {result_ids} do not match tool calls {call_ids}",
                    provider=self.name,
                )


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Enums
    "ChatRole",
    "StopReason",
    # Data Classes
    "TextBlock",
    "ToolCall",
    "ToolResult",
    "ContentBlock",
    "AgentMessage",
    "ToolDefinition",
    "TokenUsage",
    "AgentRequest",
    "AgentResponse",
    # Client ABC
    "AgentClient",
]
