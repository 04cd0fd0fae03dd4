"""
Tests for the catalog client, error mapping and request scheduler.
"""

import asyncio

import httpx
import pytest

from seatwatch.catalog.client import (
    CatalogClient,
    CatalogConfig,
    Course,
    Roster,
    SeatStatus,
    status_index,
    unwrap_envelope,
)
from seatwatch.catalog.scheduler import RequestScheduler
from seatwatch.errors import (
    CatalogError,
    NetworkError,
    NotFound,
    ProtocolError,
    RateLimited,
    RemoteError,
    ServerFault,
    friendly_message,
    remote_error_for_status,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

CS_CLASSES = [
    {
        "subject": "CS",
        "catalogNbr": "2110",
        "titleShort": "OOP & Data Structures",
        "titleLong": "Object-Oriented Programming and Data Structures",
        "enrollGroups": [
            {
                "classSections": [
                    {"classNbr": 10001, "section": "001", "ssrComponent": "LEC", "openStatus": "O"},
                    {"classNbr": 10002, "section": "201", "ssrComponent": "DIS", "openStatus": "C"},
                ]
            },
            {
                "classSections": [
                    {"classNbr": 10003, "section": "202", "ssrComponent": "DIS", "openStatus": "W"},
                ]
            },
        ],
    },
    {
        "subject": "CS",
        "catalogNbr": "3110",
        "titleLong": "Data Structures and Functional Programming",
        "enrollGroups": [],
    },
]


def _success(data):
    return httpx.Response(200, json={"status": "success", "data": data})


def _client(handler) -> CatalogClient:
    return CatalogClient(CatalogConfig(), transport=httpx.MockTransport(handler))


def _run_with_client(handler, call):
    async def run():
        client = _client(handler)
        try:
            return await call(client)
        finally:
            await client.aclose()

    return asyncio.run(run())


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class TestModels:
    def test_course_flattens_enroll_groups(self):
        course = Course.from_api(CS_CLASSES[0])
        assert course.code == "CS 2110"
        assert [s.class_nbr for s in course.sections] == ["10001", "10002", "10003"]
        assert [s.status for s in course.sections] == [
            SeatStatus.OPEN,
            SeatStatus.CLOSED,
            SeatStatus.WAITLIST,
        ]

    def test_course_title_falls_back_to_long_title(self):
        course = Course.from_api(CS_CLASSES[1])
        assert course.title == "Data Structures and Functional Programming"
        assert course.sections == []

    def test_unknown_status_code(self):
        assert SeatStatus("X") is SeatStatus.UNKNOWN
        assert SeatStatus.UNKNOWN.label == "Unknown"

    def test_roster_default_flag(self):
        assert Roster.from_api({"slug": "FA25", "descr": "Fall 2025", "isDefaultRoster": "Y"}).is_default
        assert not Roster.from_api({"slug": "SP25", "descr": "Spring 2025"}).is_default

    def test_status_index(self):
        courses = [Course.from_api(c) for c in CS_CLASSES]
        index = status_index(courses)
        assert index == {
            "10001": SeatStatus.OPEN,
            "10002": SeatStatus.CLOSED,
            "10003": SeatStatus.WAITLIST,
        }


# ---------------------------------------------------------------------------
# Envelope and HTTP errors
# ---------------------------------------------------------------------------

class TestEnvelope:
    def test_unwrap_success(self):
        assert unwrap_envelope({"status": "success", "data": {"rosters": []}}) == {"rosters": []}

    def test_error_status_uses_message(self):
        with pytest.raises(RemoteError, match="Invalid subject"):
            unwrap_envelope({"status": "error", "message": "Invalid subject"})

    def test_missing_status_is_protocol_error(self):
        with pytest.raises(ProtocolError):
            unwrap_envelope({"data": {}})

    def test_missing_data_is_protocol_error(self):
        with pytest.raises(ProtocolError):
            unwrap_envelope({"status": "success"})


class TestCatalogClient:
    def test_search_classes_sends_roster_and_subject(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _success({"classes": CS_CLASSES})

        courses = _run_with_client(handler, lambda c: c.search_classes("FA25", "CS"))
        assert [c.catalog_nbr for c in courses] == ["2110", "3110"]
        assert seen[0].url.path.endswith("/search/classes.json")
        assert seen[0].url.params["roster"] == "FA25"
        assert seen[0].url.params["subject"] == "CS"
        assert "q" not in seen[0].url.params

    def test_list_rosters_and_subjects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/config/rosters.json"):
                return _success({"rosters": [{"slug": "FA25", "descr": "Fall 2025", "isDefaultRoster": "Y"}]})
            return _success({"subjects": [{"value": "CS", "descr": "Computer Science"}]})

        rosters = _run_with_client(handler, lambda c: c.list_rosters())
        subjects = _run_with_client(handler, lambda c: c.list_subjects("FA25"))
        assert rosters[0].slug == "FA25"
        assert subjects[0].value == "CS"

    def test_http_404_is_not_found(self):
        with pytest.raises(NotFound) as exc:
            _run_with_client(lambda r: httpx.Response(404), lambda c: c.list_subjects("XX"))
        assert exc.value.status_code == 404

    def test_http_500_is_server_fault(self):
        with pytest.raises(ServerFault):
            _run_with_client(lambda r: httpx.Response(503), lambda c: c.list_rosters())

    def test_non_json_body_is_protocol_error(self):
        with pytest.raises(ProtocolError):
            _run_with_client(lambda r: httpx.Response(200, text="<html>"), lambda c: c.list_rosters())

    @pytest.mark.parametrize(
        "classes",
        [
            ["garbage"],
            [{"subject": "CS", "catalogNbr": "2110", "enrollGroups": ["not-a-group"]}],
            {"subject": "CS"},
        ],
    )
    def test_malformed_class_entries_are_protocol_errors(self, classes):
        def handler(request: httpx.Request) -> httpx.Response:
            return _success({"classes": classes})

        with pytest.raises(ProtocolError):
            _run_with_client(handler, lambda c: c.search_classes("FA25", "CS"))

    def test_malformed_roster_entry_is_protocol_error(self):
        with pytest.raises(ProtocolError):
            _run_with_client(
                lambda r: _success({"rosters": [42]}), lambda c: c.list_rosters()
            )

    def test_connect_failure_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError):
            _run_with_client(handler, lambda c: c.list_rosters())


class TestErrors:
    def test_status_mapping(self):
        assert isinstance(remote_error_for_status(404), NotFound)
        assert isinstance(remote_error_for_status(429), RateLimited)
        assert isinstance(remote_error_for_status(502), ServerFault)
        other = remote_error_for_status(400)
        assert type(other) is RemoteError
        assert other.message == "API error: 400"

    def test_friendly_messages(self):
        assert "internet connection" in friendly_message(NetworkError("x"))
        assert friendly_message(NotFound("x", 404), "Subject") == "Subject not found."
        assert "wait a moment" in friendly_message(RateLimited("x", 429))
        assert "server error" in friendly_message(ServerFault("x", 500))
        assert friendly_message(ProtocolError("bad envelope")) == "bad envelope"
        assert friendly_message(CatalogError()) == "An unexpected error occurred."


# ---------------------------------------------------------------------------
# Request scheduler
# ---------------------------------------------------------------------------

class TestRequestScheduler:
    def setup_method(self):
        self.clock = FakeClock(start=100.0)
        self.scheduler = RequestScheduler(
            min_interval=1.0, clock=self.clock, sleep=self.clock.sleep
        )

    def _task(self, name, starts, fail=False):
        async def task():
            starts.append((name, self.clock.now))
            if fail:
                raise ServerFault("boom", 500)
            return name

        return task

    def test_dispatches_in_order_and_spaced(self):
        starts = []

        async def run():
            results = await asyncio.gather(
                self.scheduler.enqueue(self._task("a", starts)),
                self.scheduler.enqueue(self._task("b", starts)),
                self.scheduler.enqueue(self._task("c", starts)),
            )
            await self.scheduler.aclose()
            return results

        results = asyncio.run(run())
        assert results == ["a", "b", "c"]
        assert [name for name, _ in starts] == ["a", "b", "c"]
        times = [t for _, t in starts]
        assert times[1] - times[0] >= 1.0
        assert times[2] - times[1] >= 1.0
        assert self.scheduler.dispatched == 3

    def test_first_dispatch_is_immediate(self):
        starts = []

        async def run():
            await self.scheduler.enqueue(self._task("a", starts))
            await self.scheduler.aclose()

        asyncio.run(run())
        assert starts == [("a", 100.0)]
        assert self.clock.sleeps == []

    def test_failure_reaches_only_its_caller(self):
        starts = []

        async def run():
            results = await asyncio.gather(
                self.scheduler.enqueue(self._task("a", starts)),
                self.scheduler.enqueue(self._task("b", starts, fail=True)),
                self.scheduler.enqueue(self._task("c", starts)),
                return_exceptions=True,
            )
            await self.scheduler.aclose()
            return results

        results = asyncio.run(run())
        assert results[0] == "a"
        assert isinstance(results[1], ServerFault)
        assert results[2] == "c"
        # The failed task still counted against the spacing.
        assert starts[2][1] - starts[0][1] >= 2.0

    def test_no_retry_on_failure(self):
        starts = []

        async def run():
            with pytest.raises(ServerFault):
                await self.scheduler.enqueue(self._task("a", starts, fail=True))
            await self.scheduler.aclose()

        asyncio.run(run())
        assert len(starts) == 1

    def test_aclose_cancels_running_and_queued_requests(self):
        started = []

        async def run():
            release = asyncio.Event()

            async def slow():
                started.append("slow")
                await release.wait()
                return "slow"

            async def quick():
                started.append("quick")
                return "quick"

            waiters = [
                asyncio.ensure_future(self.scheduler.enqueue(slow)),
                asyncio.ensure_future(self.scheduler.enqueue(quick)),
            ]
            while not started:
                await asyncio.sleep(0)
            await self.scheduler.aclose()
            return await asyncio.gather(*waiters, return_exceptions=True)

        results = asyncio.run(run())
        assert started == ["slow"]
        assert all(isinstance(r, asyncio.CancelledError) for r in results)

    def test_idle_gap_needs_no_wait(self):
        starts = []

        async def run():
            await self.scheduler.enqueue(self._task("a", starts))
            self.clock.now += 5.0
            await self.scheduler.enqueue(self._task("b", starts))
            await self.scheduler.aclose()

        asyncio.run(run())
        assert self.clock.sleeps == []
        assert starts[1][1] == 105.0
