"""
Bounded retry with exponential backoff for transient failures.

Only errors that mark themselves retryable (a `retryable` attribute set to
True) are retried. Everything else propagates on the first attempt, which
keeps bad input (extraction and parse failures) from being retried.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay cannot be negative")

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows `attempt` (0-based)."""
        delay = min(self.initial_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


NO_RETRY = RetryPolicy(max_attempts=1, initial_delay=0.0, jitter=False)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "operation",
) -> T:
    """
    Run `operation`, retrying retryable failures according to `policy`.

    The last error is re-raised once attempts are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            attempt += 1
            if not getattr(e, "retryable", False) or attempt >= policy.max_attempts:
                raise

            delay = policy.delay_for(attempt - 1)
            logger.warning(
                f"{description}: attempt {attempt}/{policy.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
