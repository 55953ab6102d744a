"""Anthropic Messages API client for the orchestration agent.

Implements ``AgentClient`` over ``httpx``. Only translation and error
classification live here; retry with backoff is applied by the agent loop
at the service boundary.

Error Handling:
    - 429: ``RateLimitError`` (retryable, honours Retry-After)
    - 401/403: ``AuthenticationError`` (not retryable)
    - 404: ``ModelNotFoundError`` (not retryable)
    - other 4xx: ``InvalidRequestError`` (not retryable)
    - 5xx/529, timeouts, network errors: ``LLMError`` with retryable=True
    - 2xx with a body that is not a Messages reply: ``MalformedResponseError``
      (retryable)

Example usage:
    client = AnthropicAgentClient(api_key="sk-ant-...")
    response = await client.send(request)
"""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from pagesmith.config.orchestrator import OrchestratorConfig, get_config
from pagesmith.core.errors.llm import (
    AuthenticationError,
    InvalidRequestError,
    LLMError,
    MalformedResponseError,
    ModelNotFoundError,
    RateLimitError,
)
from pagesmith.core.llm_provider import (
    AgentClient,
    AgentMessage,
    AgentRequest,
    AgentResponse,
    ContentBlock,
    StopReason,
    TextBlock,
    TokenUsage,
    ToolCall,
    ToolResult,
)

logger = logging.getLogger(__name__)

ANTHROPIC_API_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_MESSAGES_ENDPOINT = "/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-opus-4-1"
DEFAULT_TIMEOUT = 600.0

_STOP_REASONS = {
    "tool_use": StopReason.TOOL_CALLS,
    "max_tokens": StopReason.MAX_TOKENS,
}


class AnthropicAgentClient(AgentClient):
    """Agent client for the Anthropic Messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: str = ANTHROPIC_API_BASE_URL,
        default_model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
        config: Optional[OrchestratorConfig] = None,
    ):
        """Initialize the client.

        Args:
            api_key: API key (falls back to the configured
                ``anthropic_api_key``, then the ANTHROPIC_API_KEY env var)
            base_url: API base URL
            default_model: Model used when the request names none
            timeout: Per-request timeout in seconds
            config: Configuration to read the API key from (default: global)

        Raises:
            ValueError: If no API key is available
        """
        self._api_key = (
            api_key
            or (config or get_config()).anthropic_api_key
            or os.environ.get("ANTHROPIC_API_KEY")
        )
        if not self._api_key:
            raise ValueError(
                "Anthropic API key required. Provide via api_key parameter, "
                "anthropic_api_key config or ANTHROPIC_API_KEY environment variable."
            )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self.default_model = default_model

    async def send(self, request: AgentRequest) -> AgentResponse:
        self.validate_request(request)
        payload = self._build_payload(request)
        url = f"{self._base_url}{ANTHROPIC_MESSAGES_ENDPOINT}"
        headers = {
            "x-api-key": self._api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        model = payload["model"]
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise LLMError(f"Request timed out: {e}", provider=self.name, model=model, retryable=True) from e
        except httpx.RequestError as e:
            raise LLMError(f"Network error: {e}", provider=self.name, model=model, retryable=True) from e

        self._raise_for_status(response, model)
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Malformed response: {(response.text or '')[:200]!r}",
                provider=self.name,
                model=model,
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Malformed response: expected a JSON object, got {type(data).__name__}",
                provider=self.name,
                model=model,
                status_code=response.status_code,
            )
        return self._parse_response(data)

    # ------------------------------------------------------------------
    # Request translation
    # ------------------------------------------------------------------

    def _build_payload(self, request: AgentRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.get_model(request.model),
            "max_tokens": request.max_tokens,
            "system": request.system_prompt,
            "messages": [self._message_to_dict(m) for m in request.messages],
        }
        if request.tools:
            payload["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.input_schema}
                for t in request.tools
            ]
        return payload

    @staticmethod
    def _message_to_dict(message: AgentMessage) -> Dict[str, Any]:
        blocks: List[Dict[str, Any]] = []
        for block in message.content:
            if isinstance(block, TextBlock):
                blocks.append({"type": "text", "text": block.text})
            elif isinstance(block, ToolCall):
                blocks.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
            elif isinstance(block, ToolResult):
                entry: Dict[str, Any] = {
                    "type": "tool_result",
                    "tool_use_id": block.tool_call_id,
                    "content": block.content,
                }
                if block.is_error:
                    entry["is_error"] = True
                blocks.append(entry)
        return {"role": message.role.value, "content": blocks}

    # ------------------------------------------------------------------
    # Response translation
    # ------------------------------------------------------------------

    def _parse_response(self, data: Dict[str, Any]) -> AgentResponse:
        content: List[ContentBlock] = []
        for block in data.get("content") or []:
            block_type = block.get("type")
            if block_type == "text":
                content.append(TextBlock(text=block.get("text", "")))
            elif block_type == "tool_use":
                content.append(
                    ToolCall(
                        id=str(block.get("id", "")),
                        name=str(block.get("name", "")),
                        input=dict(block.get("input") or {}),
                    )
                )
            else:
                logger.debug("Ignoring unsupported content block type: %s", block_type)

        usage = data.get("usage") or {}
        return AgentResponse(
            stop_reason=_STOP_REASONS.get(data.get("stop_reason", ""), StopReason.FINISHED),
            content=content,
            usage=TokenUsage(
                input_tokens=int(usage.get("input_tokens", 0)),
                output_tokens=int(usage.get("output_tokens", 0)),
            ),
            model=data.get("model"),
        )

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    def _raise_for_status(self, response: httpx.Response, model: str) -> None:
        status = response.status_code
        if status < 400:
            return

        message = self._extract_error_message(response)
        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed: {message}", provider=self.name, model=model, status_code=status
            )
        if status == 404:
            raise ModelNotFoundError(f"Model not found: {message}", provider=self.name, model=model)
        if status == 429:
            raise RateLimitError(
                f"Rate limit exceeded: {message}",
                provider=self.name,
                model=model,
                retry_after=self._parse_retry_after(response),
            )
        if status >= 500:
            raise LLMError(
                f"API error {status}: {message}",
                provider=self.name,
                model=model,
                retryable=True,
                status_code=status,
            )
        raise InvalidRequestError(f"API error {status}: {message}", provider=self.name, model=model)

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> Optional[float]:
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return None

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
            error = data.get("error")
            if isinstance(error, dict):
                return str(error.get("message", error))
            return str(error or data.get("message", response.text[:200]))
        except Exception:
            return response.text[:200] if response.text else "Unknown error"
