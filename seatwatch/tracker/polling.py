"""
Periodic status polling for tracked sections.

Each tick fetches the full class listing once per distinct (roster, subject)
pair, so the request count is bounded by the number of subjects tracked,
not by the number of sections. Observed statuses are diffed against the
stored ones and a transition from any non-Open status to Open is
classified as newly opened.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from seatwatch.catalog.client import Course, SeatStatus, status_index
from seatwatch.catalog.scheduler import RequestScheduler
from seatwatch.config import DEFAULT_POLLING_INTERVAL, validate_interval
from seatwatch.errors import CatalogError, friendly_message
from seatwatch.timers import PeriodicTimer
from seatwatch.tracker.store import TrackedSection, TrackingStore, utcnow
from seatwatch.tracker.suppression import AlertSuppressionRegistry

log = logging.getLogger(__name__)

FetchClasses = Callable[[str, str], Awaitable[list[Course]]]
TickListener = Callable[["TickResult"], Any]


@dataclass
class TickResult:
    """Outcome of one polling pass.

    Attributes:
        checked_at: When the tick started.
        fetches: Number of listing requests issued.
        updated: Sections whose status was refreshed.
        newly_opened: Sections that went from non-Open to Open this tick.
        already_open: Open, not newly opened, and not suppressed.
        error: The failure that aborted the tick, if any. When set, both
               classification lists are empty.
    """

    checked_at: datetime
    fetches: int = 0
    updated: int = 0
    newly_opened: list[TrackedSection] = field(default_factory=list)
    already_open: list[TrackedSection] = field(default_factory=list)
    error: Optional[CatalogError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_message(self) -> str:
        if self.error is None:
            return ""
        return friendly_message(self.error, "Subject")


def group_by_subject(sections: list[TrackedSection]) -> dict[tuple[str, str], list[TrackedSection]]:
    """Group sections by (roster, subject), keeping first-seen order."""
    groups: dict[tuple[str, str], list[TrackedSection]] = {}
    for item in sections:
        groups.setdefault((item.roster, item.subject), []).append(item)
    return groups


class PollingEngine:
    """
    Re-fetch tracked sections on a restartable periodic timer.

    Usage:
        engine = PollingEngine(scheduler, client.search_classes, store,
                               registry, on_tick=service.handle_tick)
        engine.start()              # eager tick if anything is tracked
        engine.set_interval(30)     # re-arms at the new cadence
    """

    def __init__(
        self,
        scheduler: RequestScheduler,
        fetch_classes: FetchClasses,
        store: TrackingStore,
        registry: AlertSuppressionRegistry,
        on_tick: Optional[TickListener] = None,
        interval: int = DEFAULT_POLLING_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.scheduler = scheduler
        self._fetch_classes = fetch_classes
        self.store = store
        self.registry = registry
        self.on_tick = on_tick
        self.interval = validate_interval(interval)
        self._clock = clock
        self._timer = PeriodicTimer(self.interval, self._scheduled_tick)
        self._ticking = False
        self._eager: Optional[asyncio.Task] = None
        self.last_result: Optional[TickResult] = None

    @property
    def running(self) -> bool:
        return self._timer.running

    @property
    def ticking(self) -> bool:
        return self._ticking

    # ---- Lifecycle ----

    def start(self, eager: bool = True) -> None:
        """Arm the timer; run one tick right away if anything is tracked."""
        self._timer.restart(self.interval)
        log.info("Polling every %ds", self.interval)
        if eager and len(self.store):
            self._eager = asyncio.get_running_loop().create_task(self.tick())

    def stop(self) -> None:
        self._timer.stop()
        if self._eager is not None and not self._eager.done():
            self._eager.cancel()
        self._eager = None

    def set_interval(self, seconds: int) -> None:
        """Change cadence; re-arms the timer if it is running."""
        self.interval = validate_interval(seconds)
        if self._timer.running:
            self._timer.restart(self.interval)
            log.info("Polling interval changed to %ds", self.interval)

    # ---- Tick ----

    async def _scheduled_tick(self) -> None:
        await self.tick()

    async def tick(self) -> Optional[TickResult]:
        """
        Run one polling pass.

        Returns None without doing anything if nothing is tracked or a tick
        is already in progress.
        """
        if not len(self.store) or self._ticking:
            return None

        self._ticking = True
        try:
            result = await self._run_tick()
        finally:
            self._ticking = False

        self.last_result = result
        if self.on_tick is not None:
            self.on_tick(result)
        return result

    async def _run_tick(self) -> TickResult:
        result = TickResult(checked_at=self._clock())
        newly_opened: list[TrackedSection] = []

        for (roster, subject), items in group_by_subject(self.store.list()).items():
            try:
                courses = await self.scheduler.enqueue(partial(self._fetch_classes, roster, subject))
            except CatalogError as e:
                log.warning("Refresh of %s %s failed: %s", roster, subject, e)
                result.fetches += 1
                result.error = e
                # Statuses already advanced this tick stay; no alert runs.
                self.store.save()
                return result
            result.fetches += 1

            statuses = status_index(courses)
            for tracked in items:
                # The user may have untracked it while the fetch was in flight.
                item = self.store.get(tracked.key)
                if item is None:
                    continue
                new_status = statuses.get(item.class_nbr)
                if new_status is None:
                    log.debug("%r not found in %s %s listing", item, roster, subject)
                    continue

                old_status = item.last_status
                log.debug("%r: %s -> %s", item, old_status.label, new_status.label)
                if old_status is not SeatStatus.OPEN and new_status is SeatStatus.OPEN:
                    newly_opened.append(item)
                self.store.set_status(item.key, new_status, self._clock())
                result.updated += 1

        self.store.save()

        result.newly_opened = [item for item in newly_opened if item.key in self.store]
        fresh = {item.key for item in result.newly_opened}
        result.already_open = [
            item for item in self.store.list()
            if item.is_open
            and item.key not in fresh
            and not self.registry.is_suppressed(item.key)
        ]
        if result.newly_opened:
            log.info(
                "Newly open: %s",
                ", ".join(f"{i.label} sec {i.section}" for i in result.newly_opened),
            )
        return result
