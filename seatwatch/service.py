"""
Watch service — the single context object a presentation layer talks to.

Builds every component once (scheduler, catalog client, store, suppression
registry, search coordinator, polling engine, alert dispatcher), owns their
lifecycle, and exposes the boundary operations: search input, track,
untrack, polling cadence, dismissal, and forced refresh.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Callable, Optional

from seatwatch.catalog.client import (
    CatalogClient,
    CatalogConfig,
    ClassSection,
    Course,
    Roster,
    Subject,
)
from seatwatch.catalog.scheduler import RequestScheduler
from seatwatch.config import Settings, WatchConfig, validate_interval
from seatwatch.errors import CatalogError, friendly_message
from seatwatch.search.coordinator import SearchCoordinator, SearchListener, SearchOutcome
from seatwatch.tracker.alerts import (
    AlertDispatcher,
    IndicatorPort,
    NotifierPort,
    TonePort,
)
from seatwatch.tracker.database import StateDB
from seatwatch.tracker.polling import PollingEngine, TickResult
from seatwatch.tracker.store import SectionKey, TrackedSection, TrackingStore, utcnow
from seatwatch.tracker.suppression import AlertSuppressionRegistry

log = logging.getLogger(__name__)


class WatchService:
    """
    Orchestrate searching, tracking and alerting for one user.

    Usage:
        config = load_config()
        async with WatchService(config, indicators=ui, tone=speaker,
                                notifier=desktop) as service:
            service.submit_search_input("CS 2110")
            ...
            service.track_section(course, section)
    """

    def __init__(
        self,
        config: WatchConfig,
        indicators: IndicatorPort,
        tone: TonePort,
        notifier: NotifierPort,
        db: Optional[StateDB] = None,
        client: Optional[CatalogClient] = None,
        scheduler: Optional[RequestScheduler] = None,
        search_listener: Optional[SearchListener] = None,
        tick_listener: Optional[Callable[[TickResult], Any]] = None,
    ) -> None:
        self.config = config
        self._owns_db = db is None
        self.db = db or StateDB(config.db_url)
        self.client = client or CatalogClient(
            CatalogConfig(base_url=config.api_base, timeout=config.request_timeout)
        )
        self.scheduler = scheduler or RequestScheduler(config.min_request_interval)
        self.settings: Settings = self.db.load_settings(config.default_polling_interval)
        self.tick_listener = tick_listener

        self.store = TrackingStore(self.db)
        self.registry = AlertSuppressionRegistry(self.db, window=config.dismiss_window)
        self.search = SearchCoordinator(
            self.scheduler,
            self.client.search_classes,
            listener=search_listener,
            debounce_delay=config.debounce_delay,
        )
        self.alerts = AlertDispatcher(
            self.store,
            self.registry,
            self.settings,
            indicators=indicators,
            tone=tone,
            notifier=notifier,
        )
        self.poller = PollingEngine(
            self.scheduler,
            self.client.search_classes,
            self.store,
            self.registry,
            on_tick=self._handle_tick,
            interval=self.settings.polling_interval,
        )

        self.rosters: list[Roster] = []
        self.subjects: list[Subject] = []
        self.current_roster: Optional[str] = None
        self.init_error: Optional[str] = None
        self._started = False

    # ---- Lifecycle ----

    async def __aenter__(self) -> WatchService:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    def restore_state(self) -> None:
        """Load tracked sections and dismissals from the database."""
        self.store.load()
        self.registry.load()

    async def start(self) -> None:
        """Restore state, load the catalog, alert for open sections, start polling."""
        self.restore_state()
        await self.load_catalog()
        self._alert_open_sections()
        self.poller.start(eager=True)
        self._started = True
        log.info("Watch service started (%d tracked)", len(self.store))

    async def stop(self) -> None:
        self.poller.stop()
        self.alerts.stop_tone()
        self.registry.close()
        await self.scheduler.aclose()
        await self.client.aclose()
        if self._owns_db:
            self.db.close()
        if self._started:
            log.info("Watch service stopped")
        self._started = False

    async def load_catalog(self) -> None:
        """
        Fetch rosters, select the default one and load its subjects.

        Failures are recorded in ``init_error`` and never raised.
        """
        self.init_error = None
        try:
            self.rosters = await self.scheduler.enqueue(self.client.list_rosters)
        except CatalogError as e:
            log.warning("Failed to load rosters: %s", e)
            self.init_error = friendly_message(e, "Rosters")
            return

        default = next((r for r in self.rosters if r.is_default), None)
        if default is None and self.rosters:
            default = self.rosters[0]
        self.current_roster = default.slug if default else None
        if self.current_roster is None:
            return

        roster = self.current_roster
        try:
            self.subjects = await self.scheduler.enqueue(partial(self.client.list_subjects, roster))
        except CatalogError as e:
            log.warning("Failed to load subjects for %s: %s", roster, e)
            self.init_error = friendly_message(e, "Subjects")
            return
        self.search.set_subjects(roster, (s.value for s in self.subjects))

    @property
    def roster_label(self) -> str:
        for roster in self.rosters:
            if roster.slug == self.current_roster:
                return roster.descr
        return self.current_roster or ""

    # ---- Boundary operations ----

    def submit_search_input(self, text: str) -> SearchOutcome:
        return self.search.submit(text)

    def track_section(self, course: Course, section: ClassSection) -> Optional[TrackedSection]:
        """
        Start tracking ``section`` of ``course`` in the current roster.

        Returns the new TrackedSection, or None if it was already tracked.
        Tracking a section that is already open alerts immediately.
        """
        if self.current_roster is None:
            raise ValueError("No roster selected; load the catalog first")
        item = TrackedSection(
            roster=self.current_roster,
            class_nbr=section.class_nbr,
            subject=course.subject,
            catalog_nbr=course.catalog_nbr,
            title=course.title_short or course.title_long,
            section=section.section,
            component=section.component,
            last_status=section.status,
            last_checked_at=utcnow(),
        )
        if not self.store.add(item):
            return None
        if item.is_open:
            self.alerts.dispatch([item])
        return item

    def untrack_section(self, class_nbr: str, roster: Optional[str] = None) -> list[SectionKey]:
        removed = self.store.remove(class_nbr, roster)
        for key in removed:
            # A later re-track should be able to alert again.
            self.registry.clear(key)
        self.alerts.withdraw(removed)
        return removed

    def set_polling_interval(self, seconds: int) -> None:
        validate_interval(seconds)
        self.settings.polling_interval = seconds
        self.db.save_settings(self.settings)
        self.poller.set_interval(seconds)

    def dismiss_for_window(self, key: SectionKey) -> float:
        """Silence ``key`` for the dismissal window; returns the expiry instant."""
        expires_at = self.registry.dismiss(key)
        self.alerts.withdraw([key])
        return expires_at

    async def force_refresh(self) -> Optional[TickResult]:
        """Poll now, and refetch the active search subject if there is one."""
        tick = asyncio.get_running_loop().create_task(self.poller.tick())
        if self.search.cached_subject:
            self.search.refresh()
        return await tick

    # ---- Settings and alert controls ----

    def set_sound_enabled(self, enabled: bool) -> None:
        self.settings.sound_enabled = enabled
        self.db.save_settings(self.settings)
        if not enabled:
            self.alerts.stop_tone()

    def set_notify_enabled(self, enabled: bool) -> None:
        self.settings.notify_enabled = enabled
        self.db.save_settings(self.settings)

    def stop_alert(self) -> None:
        self.alerts.silence()

    def test_sound(self) -> bool:
        """Toggle the tone; returns True if it is now playing."""
        if self.alerts.tone_active:
            self.alerts.stop_tone()
            return False
        self.alerts.start_tone()
        return True

    def test_notification(self) -> None:
        self.alerts.notifier.notify("SeatWatch Test", "This is a test notification!")

    # ---- Internals ----

    def _alert_open_sections(self) -> None:
        open_items = [
            item for item in self.store.list()
            if item.is_open and not self.registry.is_suppressed(item.key)
        ]
        if open_items:
            self.alerts.dispatch(open_items)

    def _handle_tick(self, result: TickResult) -> None:
        if result.ok:
            self.alerts.dispatch(result.newly_opened, result.already_open)
        if self.tick_listener is not None:
            self.tick_listener(result)
