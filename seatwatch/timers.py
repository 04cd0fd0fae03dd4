"""
Cancellable asyncio timers used for debouncing and polling.

Both timers are cancel-and-replace: arming a timer discards any pending
run, so there is never more than one pending instance of either.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

log = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]


class CancellableTimer:
    """
    One-shot delayed coroutine call.

    ``arm()`` cancels a run that is still waiting out its delay and starts a
    fresh one. A callback that has already begun is left to finish.

    Usage:
        timer = CancellableTimer(0.4, perform_search)
        timer.arm()   # fires in 0.4s
        timer.arm()   # previous run discarded, fires 0.4s from now
    """

    def __init__(self, delay: float, callback: Callback, sleep: Sleep = asyncio.sleep) -> None:
        self.delay = delay
        self._callback = callback
        self._sleep = sleep
        self._waiting: Optional[asyncio.Task] = None
        self._firing: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._waiting is not None and not self._waiting.done()

    @property
    def busy(self) -> bool:
        """True while waiting out the delay or running the callback."""
        return self.pending or bool(self._firing)

    def arm(self) -> None:
        self.cancel()
        self._waiting = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._waiting is not None:
            self._waiting.cancel()
            self._waiting = None

    async def wait(self) -> None:
        """Wait for the pending run and any callbacks already firing."""
        while self.busy:
            tasks = list(self._firing)
            if self._waiting is not None:
                tasks.append(self._waiting)
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self) -> None:
        await self._sleep(self.delay)
        task = asyncio.current_task()
        # Past the delay: re-arming must no longer cancel this run.
        if self._waiting is task:
            self._waiting = None
        self._firing.add(task)
        try:
            await self._callback()
        finally:
            self._firing.discard(task)


class PeriodicTimer:
    """
    Repeating coroutine call at a fixed interval.

    The first call happens one interval after ``start()``. Exceptions raised
    by the callback are logged and do not stop the timer.
    """

    def __init__(self, interval: float, callback: Callback, sleep: Sleep = asyncio.sleep) -> None:
        self.interval = interval
        self._callback = callback
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._firing: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._loop())

    def restart(self, interval: float) -> None:
        """Cancel the current schedule and arm a new one at ``interval``."""
        self.interval = interval
        self.start()

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await self._sleep(self.interval)
            # A run in progress survives stop()/restart(); only the schedule is cancelled.
            task = loop.create_task(self._fire())
            self._firing.add(task)
            task.add_done_callback(self._firing.discard)
            await asyncio.wait({task})

    async def _fire(self) -> None:
        try:
            await self._callback()
        except Exception:
            log.exception("Periodic callback failed; keeping the schedule")
