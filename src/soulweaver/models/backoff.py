"""Exponential backoff with jitter for provider retries.

Transient generator failures (timeouts, malformed JSON) are retried a small
number of times before the caller gives up and raises. Retrying is not a
degraded mode: every attempt asks the same provider the same question.

Formula: base = initial * factor^(attempt-1), then add random jitter
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Configuration for exponential backoff with jitter.

    Attributes:
        initial_ms: Initial delay in milliseconds
        max_ms: Maximum delay cap in milliseconds
        factor: Multiplier for each attempt
        jitter: Random jitter as ratio of base delay (0.0-1.0)
        max_attempts: Total attempts including the first
    """

    initial_ms: int = 500
    max_ms: int = 10_000
    factor: float = 2.0
    jitter: float = 0.25
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if self.initial_ms <= 0:
            raise ValueError("initial_ms must be positive")
        if self.max_ms < self.initial_ms:
            raise ValueError("max_ms must be >= initial_ms")
        if self.factor < 1.0:
            raise ValueError("factor must be >= 1.0")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0.0 and 1.0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


DEFAULT_RETRY_BACKOFF = BackoffPolicy()
"""500ms -> 1s between three attempts."""

NO_RETRY = BackoffPolicy(initial_ms=1, max_ms=1, jitter=0.0, max_attempts=1)
"""Single attempt; used by tests and callers that retry at a higher level."""


def compute_backoff(policy: BackoffPolicy, attempt: int) -> int:
    """Compute backoff delay in milliseconds for a 1-indexed attempt."""
    exponent = max(attempt - 1, 0)
    base = policy.initial_ms * (policy.factor ** exponent)
    delay = base + base * policy.jitter * random.random()
    return min(policy.max_ms, int(delay))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: BackoffPolicy = DEFAULT_RETRY_BACKOFF,
    *,
    description: str = "provider call",
) -> T:
    """Run operation, retrying failures with backoff.

    The last exception propagates once attempts are exhausted.
    Cancellation is never retried.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt >= policy.max_attempts:
                raise
            delay_ms = compute_backoff(policy, attempt)
            logger.debug(
                "%s failed (attempt %d/%d), retrying in %dms: %s",
                description,
                attempt,
                policy.max_attempts,
                delay_ms,
                e,
            )
            await asyncio.sleep(delay_ms / 1000)
            attempt += 1
