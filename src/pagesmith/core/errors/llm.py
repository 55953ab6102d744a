"""Agent-service error classes.

Raised by ``AgentClient`` implementations. The ``retryable`` flag drives the
backoff policy at the agent-service boundary; everything else is fatal to
the run. Every error names the provider and, when known, the model, so a
failure can be attributed to the agent call that produced it.
"""

from typing import Optional


class LLMError(Exception):
    """Base exception for agent-service calls.

    Attributes:
        provider: Name of the provider that raised the error
        model: Model the failing request was sent to
        retryable: Whether the call can be retried with backoff
        status_code: HTTP status code if applicable
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.retryable = retryable
        self.status_code = status_code

    @property
    def label(self) -> str:
        """``provider(model)``, the form heartbeat and retry log lines use."""
        provider = self.provider or "agent"
        return f"{provider}({self.model})" if self.model else provider


class RateLimitError(LLMError):
    """The service asked us to slow down (HTTP 429).

    Attributes:
        retry_after: Seconds the service asked us to wait, if it said
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider=provider, model=model, retryable=True, status_code=429)
        self.retry_after = retry_after


class MalformedResponseError(LLMError):
    """A successful status carried a body that is not a Messages API reply.

    Usually a proxy or gateway page; retried like any other transient fault.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, provider=provider, model=model, retryable=True, status_code=status_code)


class AuthenticationError(LLMError):
    """The API key was rejected (HTTP 401/403)."""

    def __init__(
        self,
        message: str = "Authentication failed",
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        status_code: int = 401,
    ):
        super().__init__(message, provider=provider, model=model, retryable=False, status_code=status_code)


class InvalidRequestError(LLMError):
    """The request was rejected before or by the service.

    Also raised locally when a conversation breaks the tool-call protocol.

    Attributes:
        param: Offending request field, when one can be named
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        param: Optional[str] = None,
    ):
        super().__init__(message, provider=provider, model=model, retryable=False, status_code=400)
        self.param = param


class ModelNotFoundError(LLMError):
    """The configured orchestrator model does not exist or is not enabled."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ):
        super().__init__(message, provider=provider, model=model, retryable=False, status_code=404)
