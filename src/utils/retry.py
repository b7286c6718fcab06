"""Bounded timeout + exponential backoff for external calls.

Every call that leaves the process (embedding API, vector store, job
queue) goes through :func:`call_with_retry` so that no call can hang
indefinitely and transient failures are retried a bounded number of
times.  Generation calls use :func:`call_with_timeout` only; a failed
answer is surfaced to the caller instead of being silently retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from src.utils.errors import DocChatError

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an operation and how long to wait between tries."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    timeout: float = 30.0

    def backoff(self, attempt: int) -> float:
        """Delay before retry number *attempt* (1-based), doubled each time."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.TimeoutError):
        return True
    return isinstance(exc, DocChatError) and exc.transient


async def call_with_timeout(
    operation: Callable[[], Awaitable[_T]],
    timeout: float,
) -> _T:
    """Await ``operation()`` bounded by *timeout* seconds."""
    return await asyncio.wait_for(operation(), timeout=timeout)


async def call_with_retry(
    operation: Callable[[], Awaitable[_T]],
    policy: RetryPolicy,
    *,
    op_name: str,
    is_transient: Callable[[BaseException], bool] = _is_transient,
) -> _T:
    """Run ``operation()`` with a per-attempt timeout and backoff between attempts.

    Parameters
    ----------
    operation:
        Zero-argument callable returning a fresh awaitable on each call.
    policy:
        Attempt count, backoff curve and per-attempt timeout.
    op_name:
        Short label used in log events.
    is_transient:
        Predicate deciding whether a failure is worth retrying.  Defaults
        to timeouts and :class:`DocChatError` instances flagged transient.

    Raises
    ------
    Exception
        The last failure once attempts are exhausted, or the first
        non-transient failure.  Timeouts surface as ``asyncio.TimeoutError``.
    """
    attempt = 1
    while True:
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout)
        except Exception as exc:
            if not is_transient(exc) or attempt >= policy.max_attempts:
                raise
            delay = policy.backoff(attempt)
            logger.warning(
                "retrying_external_call",
                operation=op_name,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                backoff_s=delay,
                error=str(exc) or type(exc).__name__,
            )
            await asyncio.sleep(delay)
            attempt += 1
