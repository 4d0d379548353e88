"""Tests for the bounded retry primitive."""

import asyncio

import pytest
from conftest import RecordingSleep

from trading_bridge.core.retry import RetryPolicy, fixed_delay, retry_async


class Flaky:
    """Fails a fixed number of times, then succeeds."""

    def __init__(self, failures: int, error: type[Exception] = ConnectionError) -> None:
        self.failures = failures
        self.error = error
        self.attempts: list[int] = []

    async def __call__(self, attempt: int) -> str:
        self.attempts.append(attempt)
        if len(self.attempts) <= self.failures:
            raise self.error(f"failure {attempt}")
        return "ok"


class TestRetryAsync:
    """Test retry_async behavior."""

    def test_success_after_failures(self):
        """Retries until the operation succeeds."""
        operation = Flaky(failures=2)
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=5, backoff=fixed_delay(2.0))

        result = asyncio.run(retry_async(operation, policy, sleep=sleep))

        assert result == "ok"
        assert operation.attempts == [1, 2, 3]
        assert sleep.calls == [2.0, 2.0]

    def test_non_retryable_error_is_raised_immediately(self):
        """An error the policy rejects is not retried."""
        operation = Flaky(failures=3, error=ValueError)
        sleep = RecordingSleep()
        policy = RetryPolicy(
            max_attempts=5,
            retryable=lambda e: isinstance(e, ConnectionError),
            backoff=fixed_delay(1.0),
        )

        with pytest.raises(ValueError):
            asyncio.run(retry_async(operation, policy, sleep=sleep))
        assert operation.attempts == [1]
        assert sleep.calls == []

    def test_exhaustion_raises_last_error(self):
        """The last error surfaces once attempts run out."""
        operation = Flaky(failures=10)
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, backoff=fixed_delay(0.5))

        with pytest.raises(ConnectionError, match="failure 3"):
            asyncio.run(retry_async(operation, policy, sleep=sleep))
        assert operation.attempts == [1, 2, 3]
        assert sleep.calls == [0.5, 0.5]

    def test_zero_backoff_does_not_sleep(self):
        """Immediate retries skip the sleep call."""
        operation = Flaky(failures=1)
        sleep = RecordingSleep()

        asyncio.run(retry_async(operation, RetryPolicy(max_attempts=2), sleep=sleep))

        assert sleep.calls == []

    def test_backoff_receives_attempt_and_error(self):
        """The backoff function sees the failed attempt number and error."""
        seen = []

        def backoff(attempt, exc):
            seen.append((attempt, str(exc)))
            return 0.1 * attempt

        sleep = RecordingSleep()
        asyncio.run(
            retry_async(Flaky(failures=2), RetryPolicy(max_attempts=3, backoff=backoff), sleep=sleep)
        )

        assert seen == [(1, "failure 1"), (2, "failure 2")]
        assert sleep.calls == pytest.approx([0.1, 0.2])

    def test_policy_needs_at_least_one_attempt(self):
        """A policy with no attempts is rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
