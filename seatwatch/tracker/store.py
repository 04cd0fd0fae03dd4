"""
The set of tracked sections.

TrackingStore is the single owner of TrackedSection objects. Sections are
kept in one insertion-ordered dict keyed by (roster, class_nbr), so the
ordering and the uniqueness index can never drift apart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterator, Optional

from seatwatch.catalog.client import SeatStatus

if TYPE_CHECKING:
    from seatwatch.tracker.database import StateDB

log = logging.getLogger(__name__)

SectionKey = tuple[str, str]
ChangeListener = Callable[[list["TrackedSection"]], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TrackedSection:
    """A section the user asked to monitor."""

    roster: str
    class_nbr: str
    subject: str
    catalog_nbr: str
    title: str = ""
    section: str = ""
    component: str = ""
    last_status: SeatStatus = SeatStatus.UNKNOWN
    last_checked_at: Optional[datetime] = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.class_nbr = str(self.class_nbr)
        if not isinstance(self.last_status, SeatStatus):
            self.last_status = SeatStatus(self.last_status)

    @property
    def key(self) -> SectionKey:
        return (self.roster, self.class_nbr)

    @property
    def is_open(self) -> bool:
        return self.last_status is SeatStatus.OPEN

    @property
    def label(self) -> str:
        return f"{self.subject} {self.catalog_nbr}"

    def __repr__(self) -> str:
        return (
            f"<TrackedSection({self.roster}:{self.class_nbr}, {self.label} "
            f"sec {self.section}, status={self.last_status.label})>"
        )


class TrackingStore:
    """
    Ordered, uniquely-keyed collection of tracked sections.

    Every mutation writes a full snapshot to the StateDB (when one is
    attached) and then notifies subscribers with the current list.

    Usage:
        store = TrackingStore(db)
        store.load()
        store.add(TrackedSection(roster="FA25", class_nbr="12345", ...))
        removed = store.remove("12345")
    """

    def __init__(self, db: Optional[StateDB] = None) -> None:
        self.db = db
        self._items: dict[SectionKey, TrackedSection] = {}
        self._listeners: list[ChangeListener] = []

    def load(self) -> None:
        """Replace in-memory state with what the database holds."""
        if self.db is None:
            return
        self._items = {item.key: item for item in self.db.load_tracked()}
        log.info("Restored %d tracked section(s)", len(self._items))
        self._publish()

    # ---- Read ----

    def list(self) -> list[TrackedSection]:
        return list(self._items.values())

    def get(self, key: SectionKey) -> Optional[TrackedSection]:
        return self._items.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[TrackedSection]:
        return iter(list(self._items.values()))

    # ---- Mutate ----

    def add(self, section: TrackedSection) -> bool:
        """Insert ``section``; returns False if its key is already tracked."""
        if section.key in self._items:
            return False
        self._items[section.key] = section
        log.info("Tracking %r", section)
        self.save()
        return True

    def remove(self, class_nbr: str, roster: Optional[str] = None) -> list[SectionKey]:
        """Remove every section with ``class_nbr`` (optionally only in ``roster``)."""
        class_nbr = str(class_nbr)
        removed = [
            key for key in self._items
            if key[1] == class_nbr and (roster is None or key[0] == roster)
        ]
        for key in removed:
            del self._items[key]
        if removed:
            log.info("Untracked %s", ", ".join(f"{r}:{c}" for r, c in removed))
        self.save()
        return removed

    def set_status(
        self,
        key: SectionKey,
        status: SeatStatus,
        checked_at: Optional[datetime] = None,
    ) -> Optional[TrackedSection]:
        """Record a polled status in memory. Call save() to persist."""
        item = self._items.get(key)
        if item is None:
            return None
        item.last_status = status
        item.last_checked_at = checked_at or utcnow()
        return item

    def save(self) -> None:
        if self.db is not None:
            self.db.save_tracked(self.list())
        self._publish()

    # ---- Change notification ----

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _publish(self) -> None:
        snapshot = self.list()
        for listener in self._listeners:
            listener(snapshot)
