"""Bounded retry with a per-call-site policy."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


def _always(exc: BaseException) -> bool:
    return True


def fixed_delay(seconds: float) -> Callable[[int, BaseException], float]:
    """Backoff that waits the same amount after every failed attempt."""

    def _backoff(attempt: int, exc: BaseException) -> float:
        return seconds

    return _backoff


def no_delay() -> Callable[[int, BaseException], float]:
    """Backoff that retries immediately."""
    return fixed_delay(0.0)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, which errors to retry and how long to wait.

    Attributes:
        max_attempts: Total attempts including the first one (>= 1)
        retryable: Predicate deciding whether an error may be retried
        backoff: Seconds to wait after failed attempt N (1-based)
    """

    max_attempts: int
    retryable: Callable[[BaseException], bool] = _always
    backoff: Callable[[int, BaseException], float] = no_delay()

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: SleepFn = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Coroutine factory receiving the 1-based attempt number
        policy: Retry policy for this call site
        sleep: Awaitable sleep (injectable for tests)
        label: Name used in log messages

    Returns:
        The first successful result

    Raises:
        The first non-retryable error, or the last error once attempts run out
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation(attempt)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not policy.retryable(e):
                raise
            if attempt >= policy.max_attempts:
                logger.warning(f"{label} failed after {attempt} attempts: {e}")
                raise
            delay = max(0.0, policy.backoff(attempt, e))
            logger.warning(
                f"{label} attempt {attempt}/{policy.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            if delay > 0:
                await sleep(delay)
