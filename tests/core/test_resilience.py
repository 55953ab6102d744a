"""Tests for retry with backoff and the progress heartbeat."""

import asyncio
import logging
import random

import pytest

from pagesmith.core.errors import AuthenticationError, LLMError, MalformedResponseError, RateLimitError
from pagesmith.core.resilience import async_retry_with_backoff, heartbeat, is_retryable_error


class Flaky:
    """Callable that raises the queued errors before succeeding."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestIsRetryableError:
    @pytest.mark.parametrize(
        "exc,expected",
        [
            (LLMError("x", retryable=True), True),
            (LLMError("x"), False),
            (RateLimitError(), True),
            (MalformedResponseError("html"), True),
            (AuthenticationError(), False),
            (TimeoutError(), True),
            (ConnectionError(), True),
            (ValueError(), False),
        ],
    )
    def test_classification(self, exc, expected):
        assert is_retryable_error(exc) is expected


class TestAsyncRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_exponential_delays_without_jitter(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        func = Flaky(TimeoutError(), TimeoutError(), TimeoutError())
        result = await async_retry_with_backoff(func, base_delay=1.0, jitter=False, sleep_func=fake_sleep)

        assert result == "ok"
        assert func.calls == 4
        assert sleeps == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_delay_capped(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        func = Flaky(TimeoutError(), TimeoutError())
        await async_retry_with_backoff(func, base_delay=10.0, max_delay=15.0, jitter=False, sleep_func=fake_sleep)
        assert sleeps == [10.0, 15.0]

    @pytest.mark.asyncio
    async def test_retry_after_extends_delay(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        func = Flaky(RateLimitError(retry_after=7))
        await async_retry_with_backoff(func, base_delay=1.0, jitter=False, sleep_func=fake_sleep)
        assert sleeps == [7.0]

    @pytest.mark.asyncio
    async def test_jitter_is_deterministic_with_seeded_rng(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        for _ in range(2):
            await async_retry_with_backoff(
                Flaky(TimeoutError(), TimeoutError()), rng=random.Random(42), sleep_func=fake_sleep
            )
        assert sleeps[:2] == sleeps[2:]
        assert 0.5 <= sleeps[0] <= 1.5

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        func = Flaky(AuthenticationError())
        with pytest.raises(AuthenticationError):
            await async_retry_with_backoff(func, sleep_func=_no_sleep)
        assert func.calls == 1

    @pytest.mark.asyncio
    async def test_last_error_raised_when_exhausted(self):
        func = Flaky(*[LLMError(f"fail {i}", retryable=True) for i in range(3)])
        with pytest.raises(LLMError, match="fail 2"):
            await async_retry_with_backoff(func, max_retries=2, sleep_func=_no_sleep)
        assert func.calls == 3

    @pytest.mark.asyncio
    async def test_custom_predicate(self):
        func = Flaky(ValueError("odd"))
        result = await async_retry_with_backoff(
            func, should_retry=lambda exc: isinstance(exc, ValueError), sleep_func=_no_sleep
        )
        assert result == "ok"

    @pytest.mark.asyncio
    async def test_retry_log_names_failing_model(self, caplog):
        func = Flaky(LLMError("overloaded", provider="anthropic", model="claude-x", retryable=True))
        with caplog.at_level(logging.WARNING, logger="pagesmith"):
            await async_retry_with_backoff(func, label="orchestrator", sleep_func=_no_sleep)
        assert "orchestrator failed with LLMError from anthropic(claude-x)" in caplog.text

    def test_label_without_model(self):
        assert LLMError("x", provider="anthropic").label == "anthropic"
        assert LLMError("x").label == "agent"


async def _no_sleep(seconds):
    return None


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_disabled_interval(self, caplog):
        with caplog.at_level(logging.INFO, logger="pagesmith"):
            async with heartbeat("agent", 0):
                await asyncio.sleep(0)
        assert "still waiting" not in caplog.text

    @pytest.mark.asyncio
    async def test_logs_while_waiting(self, caplog):
        with caplog.at_level(logging.INFO, logger="pagesmith"):
            async with heartbeat("agent(model)", 0.01):
                await asyncio.sleep(0.05)
        assert "agent(model): still waiting" in caplog.text

    @pytest.mark.asyncio
    async def test_body_exception_propagates(self):
        with pytest.raises(RuntimeError, match="boom"):
            async with heartbeat("agent", 0.01):
                raise RuntimeError("boom")
