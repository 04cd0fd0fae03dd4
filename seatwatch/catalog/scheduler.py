"""
Single-flight, rate-limited request scheduler.

All outbound catalog calls go through one RequestScheduler. Tasks run one at
a time in submission order, and two dispatches never start less than
``min_interval`` seconds apart.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")
RequestTask = Callable[[], Awaitable[T]]


class RequestScheduler:
    """
    FIFO queue with a single worker and a minimum spacing between dispatches.

    A task's result or exception is delivered only to the caller that
    enqueued it; a failing task never halts or reorders the queue, and
    nothing is retried.

    Usage:
        scheduler = RequestScheduler(min_interval=1.0)
        classes = await scheduler.enqueue(
            lambda: client.search_classes("FA25", "CS")
        )
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._last_dispatch: Optional[float] = None
        self.dispatched = 0

    @property
    def last_dispatch(self) -> Optional[float]:
        """Clock reading taken when the most recent dispatch began."""
        return self._last_dispatch

    async def enqueue(self, task: RequestTask[T]) -> T:
        """Queue ``task`` and wait for its outcome."""
        self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((task, future))
        return await future

    async def aclose(self) -> None:
        """Stop the worker; callers still waiting on a request see it cancelled."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            while not self._queue.empty():
                _, future = self._queue.get_nowait()
                future.cancel()
            self._worker = None
            self._queue = None

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._queue = asyncio.Queue()
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            task, future = await self._queue.get()
            if future.cancelled():
                # Caller gave up before dispatch; nothing goes out for it.
                continue
            try:
                await self._dispatch(task, future)
            except asyncio.CancelledError:
                future.cancel()
                raise

    async def _dispatch(self, task: RequestTask, future: asyncio.Future) -> None:
        if self._last_dispatch is not None:
            wait = self._last_dispatch + self.min_interval - self._clock()
            if wait > 0:
                await self._sleep(wait)

        self._last_dispatch = self._clock()
        self.dispatched += 1
        try:
            result = await task()
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
