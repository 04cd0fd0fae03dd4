"""
Time-boxed suppression of dismissed alerts.

A dismissal silences one section's alert for a fixed window (5 minutes by
default). Entries are evicted lazily on lookup and proactively by a
background callback scheduled at the expiry instant.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from seatwatch.tracker.store import SectionKey, TrackedSection

if TYPE_CHECKING:
    from seatwatch.tracker.database import StateDB

log = logging.getLogger(__name__)

DISMISS_WINDOW_SECONDS = 5 * 60


class AlertSuppressionRegistry:
    """
    Registry of dismissed alerts keyed by (roster, class_nbr).

    Expirations are wall-clock epoch seconds so they survive a restart.

    Usage:
        registry = AlertSuppressionRegistry(db)
        registry.load()
        registry.dismiss(("FA25", "12345"))
        registry.is_suppressed(("FA25", "12345"))   # True for 5 minutes
    """

    def __init__(
        self,
        db: Optional[StateDB] = None,
        window: float = DISMISS_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db = db
        self.window = window
        self._clock = clock
        self._expirations: dict[SectionKey, float] = {}
        self._evictions: dict[SectionKey, asyncio.TimerHandle] = {}

    def load(self) -> None:
        """Restore unexpired dismissals from the database."""
        if self.db is None:
            return
        now = self._clock()
        stored = self.db.load_dismissals()
        self._expirations = {key: exp for key, exp in stored.items() if exp > now}
        for key, expires_at in self._expirations.items():
            self._schedule_eviction(key, expires_at - now)
        if len(stored) != len(self._expirations):
            self._save()

    def dismiss(self, key: SectionKey) -> float:
        """Suppress ``key`` for the window; returns the expiration instant."""
        expires_at = self._clock() + self.window
        self._expirations[key] = expires_at
        self._save()
        self._schedule_eviction(key, self.window)
        log.info("Dismissed %s:%s until %.0f", key[0], key[1], expires_at)
        return expires_at

    def is_suppressed(self, key: SectionKey) -> bool:
        expires_at = self._expirations.get(key)
        if expires_at is None:
            return False
        if self._clock() >= expires_at:
            self._evict(key)
            return False
        return True

    def clear(self, key: SectionKey) -> None:
        """Drop a dismissal immediately, e.g. when the section is untracked."""
        self._cancel_eviction(key)
        if self._expirations.pop(key, None) is not None:
            self._save()

    def expiration(self, key: SectionKey) -> Optional[float]:
        return self._expirations.get(key)

    def has_any_active_unsuppressed_open(self, items: Iterable[TrackedSection]) -> bool:
        """True if any item is Open and not currently suppressed."""
        return any(item.is_open and not self.is_suppressed(item.key) for item in items)

    def close(self) -> None:
        for handle in self._evictions.values():
            handle.cancel()
        self._evictions.clear()

    # ---- Internals ----

    def _evict(self, key: SectionKey) -> None:
        self._cancel_eviction(key)
        if self._expirations.pop(key, None) is not None:
            log.debug("Dismissal for %s:%s expired", key[0], key[1])
            self._save()

    def _evict_if_expired(self, key: SectionKey) -> None:
        self._evictions.pop(key, None)
        expires_at = self._expirations.get(key)
        if expires_at is None:
            return
        remaining = expires_at - self._clock()
        if remaining > 0:
            # The loop clock ran slightly ahead of the wall clock.
            self._schedule_eviction(key, remaining)
        else:
            self._evict(key)

    def _schedule_eviction(self, key: SectionKey, delay: float) -> None:
        self._cancel_eviction(key)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous use): lookups still evict lazily.
            return
        self._evictions[key] = loop.call_later(delay, self._evict_if_expired, key)

    def _cancel_eviction(self, key: SectionKey) -> None:
        handle = self._evictions.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _save(self) -> None:
        if self.db is not None:
            self.db.save_dismissals(dict(self._expirations))
