"""Retry and progress utilities for the agent-service boundary."""

from pagesmith.core.resilience.heartbeat import heartbeat
from pagesmith.core.resilience.retry import (
    SleepFunc,
    async_retry_with_backoff,
    is_retryable_error,
)

__all__ = [
    "SleepFunc",
    "async_retry_with_backoff",
    "heartbeat",
    "is_retryable_error",
]
