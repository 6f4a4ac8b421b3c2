"""Retry helper for idempotent ledger and delivery calls."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import trio

from .constants import (
    DEFAULT_ATTEMPT_TIMEOUT,
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BASE_DELAY,
    DEFAULT_JITTER,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
)
from .errors import LedgerUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (LedgerUnavailableError, trio.TooSlowError)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with jitter.

    Attributes:
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound on any single delay
        multiplier: Growth factor between consecutive delays
        jitter: Relative spread applied to each delay (0.1 means +/-10%)
        attempt_timeout: Per-attempt deadline, or None for no deadline
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    jitter: float = DEFAULT_JITTER
    attempt_timeout: Optional[float] = DEFAULT_ATTEMPT_TIMEOUT

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (0-based)."""
        delay = min(self.base_delay * self.multiplier ** retry_number, self.max_delay)
        if self.jitter:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(delay, 0.0)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    description: str = "operation",
) -> T:
    """
    Run ``operation`` until it succeeds or the retry budget is spent.

    Only transient failures (``LedgerUnavailableError`` and per-attempt
    timeouts) are retried. Anything else propagates immediately. The last
    transient error propagates once retries are exhausted.
    """
    policy = policy or RetryPolicy()
    for attempt in range(policy.max_retries + 1):
        try:
            if policy.attempt_timeout is None:
                return await operation()
            with trio.fail_after(policy.attempt_timeout):
                return await operation()
        except RETRYABLE_ERRORS as exc:
            if attempt >= policy.max_retries:
                logger.warning(
                    "%s failed after %d attempts: %s", description, attempt + 1, exc
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s attempt %d failed (%s); retrying in %.2fs",
                description,
                attempt + 1,
                type(exc).__name__,
                delay,
            )
            await trio.sleep(delay)
    raise AssertionError("unreachable")
