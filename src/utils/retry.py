"""Backoff-retry combinator shared by the fetch and extraction stages.

Replaces hand-written ``for attempt in range(...)`` loops: callers pass a
zero-argument coroutine factory and a predicate that separates transient
failures (retry) from fatal ones (raise immediately).
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import structlog

from src.utils.errors import is_retryable

_T = TypeVar("_T")

logger = structlog.get_logger(logger_name=__name__)


async def retry_async(
    fn: Callable[[], Awaitable[_T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    is_retryable: Callable[[BaseException], bool] = is_retryable,
    jitter: float = 0.1,
    operation: str = "operation",
) -> _T:
    """Await ``fn()`` until it succeeds, a fatal error occurs, or attempts run out.

    The delay before attempt *n* (1-based, n >= 2) is
    ``min(max_delay, base_delay * 2 ** (n - 2))`` plus up to ``jitter``
    of that value as random noise.

    Raises
    ------
    Exception
        The last error raised by ``fn`` when it is fatal or when
        ``max_attempts`` is exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= max_attempts or not is_retryable(exc):
                raise
            delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
            delay += delay * jitter * random.random()
            logger.warning(
                "retrying_after_error",
                operation=operation,
                attempt=attempt,
                max_attempts=max_attempts,
                delay=round(delay, 2),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await asyncio.sleep(delay)
            attempt += 1
