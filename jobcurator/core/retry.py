"""Retry-with-backoff combinator applied to every external fetch.

Backoff is linear: attempt ``n`` waits ``base_delay * n`` seconds before
attempt ``n + 1``. ``asyncio.CancelledError`` is a ``BaseException`` and is
never retried, so a session timeout cancels a fetch mid-backoff.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 2.0,
    sleep: Sleep = asyncio.sleep,
    label: str = "call",
) -> T:
    """Await ``fn()`` up to ``attempts`` times, re-raising the last failure.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt.
        attempts: Total attempts including the first.
        base_delay: Seconds; the wait grows by this much per retry.
        sleep: Injected sleep so tests need not wait.
        label: Used in retry log lines.

    Returns:
        The first successful result.
    """
    if attempts < 1:
        msg = f"attempts must be >= 1, got {attempts}"
        raise ValueError(msg)

    def _log_retry(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "%s failed (attempt %d/%d): %s, retrying in %.1fs",
            label, state.attempt_number, attempts, exc,
            state.next_action.sleep if state.next_action else 0.0,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_incrementing(start=base_delay, increment=base_delay),
        retry=retry_if_exception_type(Exception),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(fn)
