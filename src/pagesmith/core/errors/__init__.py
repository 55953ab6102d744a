"""Unified error hierarchy for pagesmith.

All custom exception classes are defined in domain-specific modules within
this package. This __init__.py re-exports everything for convenient access.

Usage:
    from pagesmith.core.errors.llm import LLMError, RateLimitError
    from pagesmith.core.errors import MissingContentError
"""

# --- LLM errors ---
from pagesmith.core.errors.llm import (
    AuthenticationError,
    InvalidRequestError,
    LLMError,
    MalformedResponseError,
    ModelNotFoundError,
    RateLimitError,
)

# --- Orchestrator errors ---
from pagesmith.core.errors.orchestrator import (
    MissingContentError,
    OrchestratorError,
)

__all__ = [
    "AuthenticationError",
    "InvalidRequestError",
    "LLMError",
    "MalformedResponseError",
    "ModelNotFoundError",
    "RateLimitError",
    "MissingContentError",
    "OrchestratorError",
]
