"""
Alert dispatcher for sections that opened up.

Turns the classification produced by a polling tick (or by tracking a
section that is already open) into requests on three narrow capability
ports: a per-section visual indicator, a continuous alert tone, and a
system notification. Rendering, audio and notification delivery are
implemented outside this package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

from jinja2 import BaseLoader, Environment

from seatwatch.config import Settings
from seatwatch.tracker.store import SectionKey, TrackedSection, TrackingStore
from seatwatch.tracker.suppression import AlertSuppressionRegistry

log = logging.getLogger(__name__)

NOTIFICATION_TITLE = "SeatWatch Alert"

NOTIFICATION_BODY = (
    "{% if sections|length == 1 %}"
    "{{ sections[0].subject }} {{ sections[0].catalog_nbr }} is now OPEN!"
    "{% else %}"
    "{{ sections|length }} sections are now OPEN!"
    "{% endif %}"
)


# ---------------------------------------------------------------------------
# Capability ports
# ---------------------------------------------------------------------------

class IndicatorPort(Protocol):
    def show_indicator(self, section: TrackedSection) -> None: ...

    def remove_indicator(self, key: SectionKey) -> None: ...


class TonePort(Protocol):
    def start_tone(self) -> None: ...

    def stop_tone(self) -> None: ...


class NotifierPort(Protocol):
    def notify(self, title: str, body: str) -> None: ...


@dataclass
class AlertBatch:
    """What a single dispatch actually did."""

    shown: list[TrackedSection] = field(default_factory=list)
    tone_started: bool = False
    notification: Optional[str] = None


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class AlertDispatcher:
    """
    Raise, re-surface and withdraw alerts for tracked sections.

    Indicators are idempotent per key: the dispatcher remembers which keys
    are showing and never asks the presentation layer twice. Only newly
    opened sections start the tone or produce a notification.

    Usage:
        dispatcher = AlertDispatcher(store, registry, settings,
                                     indicators=ui, tone=speaker, notifier=desktop)
        dispatcher.dispatch(result.newly_opened, result.already_open)
        dispatcher.withdraw([("FA25", "12345")])
    """

    def __init__(
        self,
        store: TrackingStore,
        registry: AlertSuppressionRegistry,
        settings: Settings,
        indicators: IndicatorPort,
        tone: TonePort,
        notifier: NotifierPort,
    ) -> None:
        self.store = store
        self.registry = registry
        self.settings = settings
        self.indicators = indicators
        self.tone = tone
        self.notifier = notifier
        self._shown: set[SectionKey] = set()
        self.tone_active = False
        self._jinja_env = Environment(loader=BaseLoader(), autoescape=False)
        self._body_template = self._jinja_env.from_string(NOTIFICATION_BODY)

    @property
    def shown_keys(self) -> set[SectionKey]:
        return set(self._shown)

    def render_body(self, sections: list[TrackedSection]) -> str:
        return self._body_template.render(sections=sections)

    def dispatch(
        self,
        newly_opened: Iterable[TrackedSection],
        already_open: Iterable[TrackedSection] = (),
    ) -> AlertBatch:
        """Show indicators and, for fresh openings, sound and notify.

        Indicators for sections that are no longer open are retired first,
        so a section that closes and later reopens alerts again.
        """
        self.retire_closed()
        batch = AlertBatch()

        for item in newly_opened:
            if self._actionable(item) and self._show(item):
                batch.shown.append(item)

        for item in already_open:
            if self._actionable(item):
                self._show(item)

        if not batch.shown:
            return batch

        if self.settings.sound_enabled:
            batch.tone_started = self.start_tone()
        if self.settings.notify_enabled:
            body = self.render_body(batch.shown)
            self.notifier.notify(NOTIFICATION_TITLE, body)
            batch.notification = body
        log.info("Alerted for %d newly open section(s)", len(batch.shown))
        return batch

    def retire_closed(self) -> list[SectionKey]:
        """Remove indicators whose section is untracked or not Open any more."""
        retired = []
        for key in list(self._shown):
            item = self.store.get(key)
            if item is None or not item.is_open:
                retired.append(key)
        if retired:
            self.withdraw(retired)
        return retired

    def withdraw(self, keys: Iterable[SectionKey]) -> None:
        """Remove indicators (after untrack or dismiss) and re-check the tone."""
        for key in keys:
            if key in self._shown:
                self._shown.discard(key)
                self.indicators.remove_indicator(key)
        self.reevaluate()

    def reevaluate(self) -> None:
        """Stop the tone once no open, unsuppressed section remains."""
        if not self.registry.has_any_active_unsuppressed_open(self.store.list()):
            self.stop_tone()

    def start_tone(self) -> bool:
        if self.tone_active:
            return False
        self.tone.start_tone()
        self.tone_active = True
        return True

    def stop_tone(self) -> None:
        if self.tone_active:
            self.tone.stop_tone()
            self.tone_active = False

    def silence(self) -> None:
        """Stop the tone even if this dispatcher did not start it."""
        self.tone.stop_tone()
        self.tone_active = False

    # ---- Internals ----

    def _actionable(self, item: TrackedSection) -> bool:
        return item.key in self.store and not self.registry.is_suppressed(item.key)

    def _show(self, item: TrackedSection) -> bool:
        if item.key in self._shown:
            return False
        self._shown.add(item.key)
        self.indicators.show_indicator(item)
        return True
