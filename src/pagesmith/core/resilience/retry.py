"""Async retry with exponential backoff and jitter.

Used at the agent-service boundary only. Tool handlers never retry through
this path; their failures are surfaced as data.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Protocol, TypeVar

from pagesmith.core.errors.llm import LLMError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SleepFunc(Protocol):
    """Protocol for injectable sleep function."""

    async def __call__(self, seconds: float) -> None: ...


def is_retryable_error(exc: BaseException) -> bool:
    """Return True for transient agent-service failures.

    ``LLMError`` carries its own ``retryable`` flag. Bare ``TimeoutError`` and
    ``ConnectionError`` are treated as transient; anything else is fatal.
    """
    if isinstance(exc, LLMError):
        return exc.retryable
    return isinstance(exc, (TimeoutError, ConnectionError))


async def async_retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    label: str = "operation",
    rng: Optional[random.Random] = None,
    sleep_func: Optional[SleepFunc] = None,
) -> T:
    """Async retry with exponential backoff and jitter.

    Retries an async function on transient failure with increasing delays.
    Jitter adds 50-150% randomness to delay to prevent thundering herd.
    Non-retryable exceptions propagate immediately.

    Args:
        func: Async function to retry (no arguments; use lambda for args).
        max_retries: Maximum retry attempts (default 3).
        base_delay: Initial delay in seconds (default 1.0).
        max_delay: Maximum delay cap in seconds (default 60.0).
        exponential_base: Multiplier per retry (default 2.0).
        jitter: Add randomness to delay (default True, 50-150% of base).
        should_retry: Predicate deciding whether an exception is transient
            (default: ``is_retryable_error``).
        label: Name used in retry log lines.
        rng: Injectable Random instance for deterministic testing.
        sleep_func: Injectable sleep function for time control in tests.

    Returns:
        Result from the function on success.

    Raises:
        Exception: The last exception if all retries exhausted, or the first
            non-retryable exception.

    Testing example:
        >>> sleep_times = []
        >>> async def fake_sleep(s): sleep_times.append(s)
        >>> await async_retry_with_backoff(
        ...     func, rng=random.Random(42), sleep_func=fake_sleep
        ... )
    """
    predicate = should_retry or is_retryable_error
    _rng = rng or random.Random()
    _sleep = sleep_func or asyncio.sleep

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not predicate(e) or attempt == max_retries:
                raise

            delay = min(base_delay * (exponential_base**attempt), max_delay)
            retry_after = getattr(e, "retry_after", None)
            if isinstance(retry_after, (int, float)) and retry_after > delay:
                delay = min(float(retry_after), max_delay)

            if jitter:
                jitter_factor = 0.5 + _rng.random()  # Range: 0.5 to 1.5
                delay = delay * jitter_factor

            source = f" from {e.label}" if isinstance(e, LLMError) else ""
            logger.warning(
                "%s failed with %s%s (attempt %d/%d), retrying in %.1fs: %s",
                label,
                type(e).__name__,
                source,
                attempt + 1,
                max_retries + 1,
                delay,
                e,
            )
            await _sleep(delay)

    raise RuntimeError("async_retry_with_backoff: unexpected state")
