"""
Retry helpers for async provider calls.

The backoff math lives in RetryPolicy; with_retry only runs the loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .errors import ProviderError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(attempt: int, base_delay: float) -> float:
    """attempt x base_delay: 1s, 2s, 3s for a 1s base."""
    return attempt * base_delay


def exponential_backoff(attempt: int, base_delay: float) -> float:
    """base_delay x 2^(attempt-1): 1s, 2s, 4s for a 1s base."""
    return base_delay * (2 ** (attempt - 1))


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try and how long to wait in between.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Seconds fed to the backoff function
        backoff: (attempt, base_delay) -> seconds to sleep after a failed attempt
        attempt_timeout: Per-attempt deadline in seconds (None = no deadline)
        retry_on: Exception types that consume an attempt instead of propagating
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    backoff: Callable[[int, float], float] = linear_backoff
    attempt_timeout: Optional[float] = None
    retry_on: Tuple[Type[BaseException], ...] = (ProviderError,)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_for(self, attempt: int) -> float:
        return max(0.0, self.backoff(attempt, self.base_delay))

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_attempts=1, base_delay=0.0)


@dataclass
class RetryState:
    """Progress of one retried call."""
    attempt: int
    max_attempts: int
    base_delay: float

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    name: str = "call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await fn() until it succeeds or the policy runs out of attempts.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt
        policy: Attempts, backoff and per-attempt deadline
        name: Label for log lines
        sleep: Awaitable sleep (tests inject a no-op)

    Returns:
        The first successful result.

    Raises:
        The last retryable error once attempts are exhausted, or any
        non-retryable error immediately.
    """
    state = RetryState(attempt=0, max_attempts=policy.max_attempts, base_delay=policy.base_delay)
    last_error: Optional[BaseException] = None

    while not state.exhausted:
        state.attempt += 1
        try:
            if policy.attempt_timeout is not None:
                return await asyncio.wait_for(fn(), timeout=policy.attempt_timeout)
            return await fn()
        except asyncio.TimeoutError:
            last_error = TransportError(
                f"{name} timed out after {policy.attempt_timeout:.1f}s",
                context={'attempt': state.attempt},
            )
        except policy.retry_on as e:
            last_error = e

        if state.exhausted:
            break

        delay = policy.delay_for(state.attempt)
        logger.warning(
            f"{name} failed (attempt {state.attempt}/{state.max_attempts}): {last_error}. "
            f"Retrying in {delay:.1f}s..."
        )
        await sleep(delay)

    logger.error(f"{name} failed after {state.max_attempts} attempts: {last_error}")
    raise last_error
