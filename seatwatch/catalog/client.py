"""
Async client for the Cornell class roster API.

The service is read-only and exposes three calls we care about: the list
of rosters (terms), the subjects offered in a roster, and the classes for
a roster + subject. Every response is wrapped in an envelope:

    {"status": "success", "data": {...}}

API docs: https://classes.cornell.edu/content/SP24/api-details
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

import httpx

from seatwatch.config import API_BASE
from seatwatch.errors import (
    NetworkError,
    ProtocolError,
    RemoteError,
    remote_error_for_status,
)

log = logging.getLogger(__name__)


class SeatStatus(enum.Enum):
    """Seat availability of a class section, as reported by ``openStatus``."""

    OPEN = "O"
    CLOSED = "C"
    WAITLIST = "W"
    UNKNOWN = ""

    @classmethod
    def _missing_(cls, value: object) -> SeatStatus:
        return cls.UNKNOWN

    @property
    def label(self) -> str:
        return {
            SeatStatus.OPEN: "Open",
            SeatStatus.CLOSED: "Closed",
            SeatStatus.WAITLIST: "Waitlist",
            SeatStatus.UNKNOWN: "Unknown",
        }[self]


@dataclass
class CatalogConfig:
    """Configuration for catalog API access."""

    base_url: str = API_BASE
    timeout: float = 10.0


@dataclass
class Roster:
    slug: str
    descr: str
    is_default: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Roster:
        return cls(
            slug=str(data.get("slug", "")),
            descr=str(data.get("descr", "")),
            is_default=data.get("isDefaultRoster") == "Y",
        )


@dataclass
class Subject:
    value: str
    descr: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Subject:
        return cls(value=str(data.get("value", "")), descr=str(data.get("descr", "")))


@dataclass
class ClassSection:
    """A single enrollable section (lecture, discussion, lab...)."""

    class_nbr: str
    section: str
    component: str
    status: SeatStatus

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ClassSection:
        return cls(
            class_nbr=str(data.get("classNbr", "")),
            section=str(data.get("section", "")),
            component=str(data.get("ssrComponent", "")),
            status=SeatStatus(data.get("openStatus") or ""),
        )


@dataclass
class Course:
    """A course listing with its sections flattened across enroll groups."""

    subject: str
    catalog_nbr: str
    title_short: str = ""
    title_long: str = ""
    sections: list[ClassSection] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.title_short or self.title_long or "Untitled"

    @property
    def code(self) -> str:
        return f"{self.subject} {self.catalog_nbr}"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Course:
        sections = [
            ClassSection.from_api(sec)
            for group in data.get("enrollGroups") or []
            for sec in group.get("classSections") or []
        ]
        return cls(
            subject=str(data.get("subject", "")),
            catalog_nbr=str(data.get("catalogNbr", "")),
            title_short=data.get("titleShort") or "",
            title_long=data.get("titleLong") or "",
            sections=sections,
        )


def status_index(courses: list[Course]) -> dict[str, SeatStatus]:
    """Map every class number in a listing to its reported status."""
    return {sec.class_nbr: sec.status for course in courses for sec in course.sections}


class CatalogClient:
    """
    Client for the class roster API.

    Calls are not rate limited here; route them through a RequestScheduler.

    Usage:
        async with CatalogClient(CatalogConfig()) as client:
            rosters = await client.list_rosters()
            subjects = await client.list_subjects(rosters[0].slug)
            classes = await client.search_classes("FA25", "CS")
    """

    def __init__(
        self,
        config: Optional[CatalogConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or CatalogConfig()
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={"Accept": "application/json"},
            timeout=self.config.timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    # ---- Endpoints ----

    async def list_rosters(self) -> list[Roster]:
        data = await self._get("/config/rosters.json")
        return parse_entries(data, "rosters", Roster.from_api)

    async def list_subjects(self, roster: str) -> list[Subject]:
        data = await self._get("/config/subjects.json", params={"roster": roster})
        return parse_entries(data, "subjects", Subject.from_api)

    async def search_classes(self, roster: str, subject: str, query: str = "") -> list[Course]:
        """
        List the classes offered for a roster + subject.

        Args:
            roster: Roster slug, e.g. "FA25".
            subject: Subject code, e.g. "CS".
            query: Optional server-side text filter. Callers in this package
                   always fetch the full listing and filter locally.
        """
        params = {"roster": roster, "subject": subject}
        if query:
            params["q"] = query
        data = await self._get("/search/classes.json", params=params)
        return parse_entries(data, "classes", Course.from_api)

    # ---- Envelope handling ----

    async def _get(self, path: str, params: Optional[dict[str, str]] = None) -> dict[str, Any]:
        log.debug("GET %s %s", path, params or {})
        try:
            resp = await self._client.get(path, params=params)
        except httpx.TransportError as e:
            raise NetworkError(f"Request to {path} failed: {e}") from e

        if not resp.is_success:
            raise remote_error_for_status(resp.status_code)

        try:
            body = resp.json()
        except ValueError as e:
            raise ProtocolError(f"Response from {path} is not JSON") from e

        return unwrap_envelope(body)


def unwrap_envelope(body: Any) -> dict[str, Any]:
    """Return the ``data`` object of a success envelope or raise."""
    if not isinstance(body, dict) or "status" not in body:
        raise ProtocolError("Malformed response envelope")
    if body["status"] != "success":
        raise RemoteError(body.get("message") or "API returned error status")
    data = body.get("data")
    if not isinstance(data, dict):
        raise ProtocolError("Response envelope has no data object")
    return data


M = TypeVar("M")


def parse_entries(data: dict[str, Any], key: str, build: Callable[[dict[str, Any]], M]) -> list[M]:
    """Build one model per entry of ``data[key]``, or raise ProtocolError."""
    entries = data.get(key) or []
    if not isinstance(entries, list):
        raise ProtocolError(f"Expected a list for {key!r}")
    try:
        return [build(entry) for entry in entries]
    except (AttributeError, TypeError, KeyError, ValueError) as e:
        raise ProtocolError(f"Malformed {key!r} entry: {e}") from e
