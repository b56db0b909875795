"""Tests for retry with exponential backoff."""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from nodeflow.core.retry import NonRetriableError, RetryPolicy, with_retry


class _Recorder:
    """Records sleeps instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            return "done"

        assert await with_retry(op, 3, 0.0) == "done"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_permanent_failure_calls_n_plus_one_and_reraises_last(self):
        """A failing operation runs max_retries + 1 times and its last error is raised."""
        errors: list[Exception] = []
        sleep = _Recorder()

        async def op():
            error = RuntimeError(f"attempt {len(errors)}")
            errors.append(error)
            raise error

        with pytest.raises(RuntimeError) as exc_info:
            await with_retry(op, 3, 1.0, 2.0, sleep=sleep)

        assert len(errors) == 4
        assert exc_info.value is errors[-1]
        assert sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        attempts = 0

        async def op():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise ConnectionError("flaky")
            return attempts

        assert await with_retry(op, 3, 0.0, sleep=_Recorder()) == 3

    @pytest.mark.asyncio
    async def test_non_retriable_raised_immediately(self):
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            raise NonRetriableError("bad config")

        with pytest.raises(NonRetriableError):
            await with_retry(op, 5, 0.0, sleep=_Recorder())

        assert calls == 1

    @pytest.mark.asyncio
    async def test_jitter_hook_applied(self):
        sleep = _Recorder()

        async def op():
            raise ValueError("x")

        with pytest.raises(ValueError):
            await with_retry(op, 2, 1.0, 2.0, jitter=lambda d: d / 2, sleep=sleep)

        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            raise ValueError("x")

        with pytest.raises(ValueError):
            await with_retry(op, 0, 1.0, sleep=_Recorder())

        assert calls == 1

    @settings(max_examples=25, deadline=None)
    @given(st.integers(min_value=0, max_value=6))
    def test_retry_bound_property(self, max_retries: int):
        """Property test: calls == max_retries + 1 for any bound."""
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            raise OSError("down")

        with pytest.raises(OSError):
            asyncio.run(with_retry(op, max_retries, 0.0, sleep=_Recorder()))

        assert calls == max_retries + 1


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    @pytest.mark.asyncio
    async def test_policy_runs_with_its_settings(self):
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            raise TimeoutError("slow")

        with pytest.raises(TimeoutError):
            await RetryPolicy(max_retries=1, delay=0.0).run(op)

        assert calls == 2
