"""Shared concurrency primitives for the extraction and discovery stages.

Two patterns are exposed:

1. **CallThrottle** -- the one piece of state shared between extraction
   workers.  It caps how many model calls are in flight at once and
   enforces a minimum delay between consecutive call *starts*, so a burst
   of ready workers cannot trip provider rate limits.  The start
   timestamp is guarded by an ``asyncio.Lock`` so the stagger is applied
   serially even when many workers wake up together.

2. **throttled_gather** -- a drop-in replacement for ``asyncio.gather``
   that bounds concurrency with a semaphore.  Used for multi-seed
   discovery, where seeds are independent.
"""

from __future__ import annotations

import asyncio
import time
from types import TracebackType
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


class CallThrottle:
    """Bounded-concurrency gate with a minimum stagger between call starts.

    Usage::

        throttle = CallThrottle(max_concurrent=3, min_interval=0.5)
        async with throttle:
            await llm.complete(...)

    Parameters
    ----------
    max_concurrent:
        Maximum number of holders inside the ``async with`` block at once.
    min_interval:
        Minimum seconds between two consecutive entries.
    """

    def __init__(self, max_concurrent: int, min_interval: float = 0.0) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._max_concurrent = max_concurrent
        self._min_interval = max(0.0, min_interval)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._start_lock = asyncio.Lock()
        self._last_start: float | None = None
        self._in_flight = 0
        self._peak_in_flight = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        """Highest number of simultaneous holders observed so far."""
        return self._peak_in_flight

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        try:
            await self._wait_for_stagger()
        except BaseException:
            self._semaphore.release()
            raise
        self._in_flight += 1
        self._peak_in_flight = max(self._peak_in_flight, self._in_flight)

    def release(self) -> None:
        self._in_flight -= 1
        self._semaphore.release()

    async def _wait_for_stagger(self) -> None:
        async with self._start_lock:
            if self._last_start is not None and self._min_interval > 0:
                elapsed = time.monotonic() - self._last_start
                if elapsed < self._min_interval:
                    await asyncio.sleep(self._min_interval - elapsed)
            self._last_start = time.monotonic()

    async def __aenter__(self) -> CallThrottle:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many run simultaneously.
    return_exceptions:
        Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *(_wrapped(c) for c in coros), return_exceptions=return_exceptions
    )
