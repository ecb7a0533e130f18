# src/core/retry.py — v1
"""Bounded retries with linear backoff and a pluggable transient-error predicate.

Every external call in the pipeline (AI, image search, image download,
conversion) goes through with_retry(). Attempt n waits base_delay_s * n
seconds before attempt n + 1.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from booknest.core.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lower-cased substrings that mark an error message as transient.
RETRYABLE_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "429",
    "timeout",
    "timed out",
    "econnreset",
    "econnrefused",
    "enotfound",
    "network",
    "socket hang up",
    "connection reset",
    "connection refused",
)


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for one class of external call."""

    max_retries: int = 5
    base_delay_s: float = 10.0


def is_retryable_error(error: BaseException) -> bool:
    """Return True when *error* looks like a transient transport failure."""
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    msg = str(error).lower()
    return any(pattern in msg for pattern in RETRYABLE_PATTERNS)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    operation: str = "operation",
    max_retries: int = 5,
    base_delay_s: float = 10.0,
    should_retry: Callable[[BaseException], bool] | None = None,
    on_retry: Callable[[int, BaseException], Any] | None = None,
) -> T:
    """Execute an async callable, retrying transient failures.

    Args:
        fn: Zero-argument coroutine factory.
        operation: Label used in logs and in RetryExhaustedError.
        max_retries: Total number of attempts (>= 1).
        base_delay_s: Delay unit; the wait after attempt n is n * base_delay_s.
        should_retry: Predicate deciding whether an error is transient.
            Every error is retried when omitted.
        on_retry: Called with (attempt, error) before each wait.

    Raises:
        RetryExhaustedError: If the last attempt fails with a retryable error.
        Exception: The original error when should_retry rejects it.
    """
    attempts = max(1, max_retries)
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt >= attempts:
                raise RetryExhaustedError(operation, attempt, e) from e

            delay = base_delay_s * attempt
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                operation, attempt, attempts, delay, e,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


async def retry_with_config(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    operation: str,
    should_retry: Callable[[BaseException], bool] | None = is_retryable_error,
) -> T:
    """Shorthand for with_retry() driven by a RetryConfig."""
    return await with_retry(
        fn,
        operation=operation,
        max_retries=config.max_retries,
        base_delay_s=config.base_delay_s,
        should_retry=should_retry,
    )
