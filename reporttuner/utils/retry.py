"""Bounded retry with exponential backoff for external calls.

Archival writes and fine-tune provider calls go through
:func:`retry_async`.  Only errors listed in ``retry_on`` (by default
:class:`TransientIOError`) are retried; anything else propagates on the
first attempt.  When the retry ceiling is reached the last error is
re-raised unchanged so the caller can decide how to abort.

Delay for attempt *n* (1-based) is ``base_delay * 2 ** (n - 1)`` capped at
``max_delay``.  No sleep happens after the final attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from reporttuner.utils.errors import TransientIOError
from reporttuner.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ceiling and backoff curve for one class of external call."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Return the backoff in seconds after the given failed attempt."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


async def retry_async(
    fn: Callable[[], Awaitable[_T]],
    policy: RetryPolicy,
    *,
    op: str,
    retry_on: tuple[type[BaseException], ...] = (TransientIOError,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    logger: structlog.BoundLogger | None = None,
) -> _T:
    """Call ``fn`` until it succeeds or ``policy.max_attempts`` is reached.

    Parameters
    ----------
    fn:
        Zero-argument coroutine factory.  Called once per attempt so every
        attempt gets a fresh coroutine.
    policy:
        Attempt ceiling and backoff curve.
    op:
        Short operation name used as the log event prefix
        (``archive`` -> ``archive_retry`` / ``archive_retries_exhausted``).
    retry_on:
        Exception types that are worth another attempt.
    sleep:
        Awaitable sleep function; tests inject a no-op.
    logger:
        Optional bound logger (e.g. carrying ``cycle_id``).

    Raises
    ------
    BaseException
        The last retryable error once attempts are exhausted, or any
        non-retryable error immediately.
    """
    log = logger or _logger
    attempts = max(1, policy.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= attempts:
                log.error(
                    f"{op}_retries_exhausted",
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            delay = policy.delay_for(attempt)
            log.warning(
                f"{op}_retry",
                attempt=attempt,
                max_attempts=attempts,
                backoff_s=delay,
                error=str(exc),
            )
            await sleep(delay)

    # range() always runs at least once and every branch returns or raises.
    raise AssertionError("unreachable")
