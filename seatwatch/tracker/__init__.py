"""
Section tracker — persistent state, polling, alert suppression, and alert dispatch.
"""

from seatwatch.tracker.store import TrackedSection, TrackingStore
from seatwatch.tracker.database import StateDB
from seatwatch.tracker.suppression import AlertSuppressionRegistry
from seatwatch.tracker.polling import PollingEngine, TickResult
from seatwatch.tracker.alerts import AlertDispatcher

__all__ = [
    "TrackedSection",
    "TrackingStore",
    "StateDB",
    "AlertSuppressionRegistry",
    "PollingEngine",
    "TickResult",
    "AlertDispatcher",
]
