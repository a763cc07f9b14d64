"""Generic async retry with capped exponential backoff, built on tenacity.

Usage::

    from kb_ingest.retry import retry_with_backoff

    vectors = await retry_with_backoff(
        lambda: provider.embed(batch),
        max_attempts=3,
        base_delay=3.0,
    )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

logger = logging.getLogger(__name__)

T = TypeVar("T")

BaseDelay = float | Callable[[BaseException], float]


def backoff_delay(attempt: int, base: float, max_delay: float) -> float:
    """Delay before retrying after failed attempt number *attempt* (1-based)."""
    return min(base * 2 ** (attempt - 1), max_delay)


def _always(exc: BaseException) -> bool:
    return True


class _CappedExponentialWait:
    """tenacity wait strategy whose base may depend on the raised exception."""

    def __init__(self, base_delay: BaseDelay, max_delay: float) -> None:
        self._base_delay = base_delay
        self._max_delay = max_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        base = self._base_delay
        if callable(base):
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            base = base(exc) if exc is not None else 0.0
        return backoff_delay(retry_state.attempt_number, base, self._max_delay)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Attempt %d failed (%s); retrying in %.1fs",
        retry_state.attempt_number,
        exc,
        wait,
    )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    base_delay: BaseDelay,
    is_retryable: Callable[[BaseException], bool] = _always,
    *,
    max_delay: float = 30.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await *operation* up to *max_attempts* times.

    Parameters
    ----------
    operation:
        Zero-argument coroutine factory; called once per attempt.
    max_attempts:
        Total attempts including the first one.
    base_delay:
        Seconds, or a callable mapping the failing exception to seconds.
        The wait after attempt ``n`` is ``min(base * 2**(n-1), max_delay)``.
    is_retryable:
        Exceptions for which this returns ``False`` are re-raised at once.
    sleep:
        Awaitable sleep used between attempts (injectable for tests).

    Raises
    ------
    Exception
        The last exception raised by *operation*.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=_CappedExponentialWait(base_delay, max_delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_sleep,
        reraise=True,
        sleep=sleep,
    )
    return await retrying(operation)
