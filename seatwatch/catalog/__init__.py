"""
Catalog access — HTTP client, response models, and the request scheduler.
"""

from seatwatch.catalog.client import (
    CatalogClient,
    CatalogConfig,
    ClassSection,
    Course,
    Roster,
    SeatStatus,
    Subject,
)
from seatwatch.catalog.scheduler import RequestScheduler

__all__ = [
    "CatalogClient",
    "CatalogConfig",
    "ClassSection",
    "Course",
    "Roster",
    "SeatStatus",
    "Subject",
    "RequestScheduler",
]
