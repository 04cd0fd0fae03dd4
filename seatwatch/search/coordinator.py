"""
Search coordinator — turns raw search input into course listings.

Input such as "CS", "cs 21" or "MATH1920" is parsed into a subject code
plus an optional catalog-number prefix. The full listing for a subject is
fetched once (debounced, through the RequestScheduler) and cached; further
typing within the same subject is a local prefix filter with no network
traffic. Because responses can complete after the user has moved on, every
fetch is tagged with a sequence number and the exact input that triggered
it, and is applied only if both are still current.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from seatwatch.catalog.client import Course
from seatwatch.catalog.scheduler import RequestScheduler
from seatwatch.errors import CatalogError, friendly_message
from seatwatch.timers import CancellableTimer

log = logging.getLogger(__name__)

DEBOUNCE_DELAY_SECONDS = 0.4

_INPUT_RE = re.compile(r"^([A-Z]+)\s*(\d.*)?$")

FetchClasses = Callable[[str, str], Awaitable[list[Course]]]


@dataclass(frozen=True)
class ParsedQuery:
    subject: str
    query: str = ""


def normalize_input(text: str) -> str:
    return text.strip().upper()


def parse_search_input(text: str, known_subjects: Iterable[str]) -> Optional[ParsedQuery]:
    """
    Split raw input into subject + catalog prefix.

    Examples: "CS 2110", "cs2110", "CS", "MATH 19". Returns None when the
    input is empty, malformed, or names a subject not in ``known_subjects``.
    """
    match = _INPUT_RE.match(normalize_input(text))
    if not match:
        return None
    subject = match.group(1)
    if subject not in known_subjects:
        return None
    return ParsedQuery(subject=subject, query=(match.group(2) or "").strip())


def filter_courses(courses: list[Course], prefix: str) -> list[Course]:
    if not prefix:
        return list(courses)
    return [c for c in courses if c.catalog_nbr.startswith(prefix)]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass
class SearchResults:
    subject: str
    query: str
    courses: list[Course] = field(default_factory=list)

    @property
    def summary(self) -> str:
        if self.query:
            return f"Showing {len(self.courses)} result(s) for {self.subject} {self.query}"
        return f"Showing {len(self.courses)} class(es) in {self.subject}"


@dataclass
class SearchFailed:
    subject: str
    message: str
    error: Optional[CatalogError] = None


@dataclass
class SearchInvalid:
    raw: str


@dataclass
class SearchPending:
    subject: str


SearchOutcome = Union[SearchResults, SearchFailed, SearchInvalid, SearchPending]
SearchListener = Callable[[SearchOutcome], Any]


@dataclass
class _FetchIntent:
    seq: int
    subject: str
    normalized: str


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class SearchCoordinator:
    """
    Debounced, cache-aware search over one roster.

    ``submit()`` never blocks: it returns the immediate outcome (results for
    a cached subject, invalid input, or pending) and publishes later
    outcomes to ``listener``.

    Usage:
        coordinator = SearchCoordinator(scheduler, client.search_classes,
                                        listener=view.show_search)
        coordinator.set_subjects("FA25", ["CS", "MATH"])
        coordinator.submit("CS")        # SearchPending, fetch after 0.4s
        coordinator.submit("CS 21")     # local filter once CS is cached
    """

    def __init__(
        self,
        scheduler: RequestScheduler,
        fetch_classes: FetchClasses,
        listener: Optional[SearchListener] = None,
        debounce_delay: float = DEBOUNCE_DELAY_SECONDS,
    ) -> None:
        self.scheduler = scheduler
        self._fetch_classes = fetch_classes
        self.listener = listener
        self.debounce_delay = debounce_delay

        self.roster: Optional[str] = None
        self.subjects: set[str] = set()

        self.cached_subject: Optional[str] = None
        self.cached_courses: list[Course] = []
        self.results: list[Course] = []
        self.error: Optional[SearchFailed] = None

        self._current_input = ""
        self._seq = 0
        self._inflight: Optional[_FetchIntent] = None
        self._timer: Optional[CancellableTimer] = None
        self._refreshes: set[asyncio.Task] = set()

    def set_subjects(self, roster: str, subjects: Iterable[str]) -> None:
        """Switch roster and known subjects; drops any cached listing."""
        self.roster = roster
        self.subjects = set(subjects)
        self._drop_cache()

    @property
    def current_input(self) -> str:
        return self._current_input

    @property
    def searching(self) -> bool:
        return self._inflight is not None

    # ---- Entry points ----

    def submit(self, raw_input: str) -> SearchOutcome:
        """Handle one edit of the search box."""
        normalized = normalize_input(raw_input)
        self._current_input = normalized
        parsed = parse_search_input(normalized, self.subjects)

        if parsed is None:
            self._cancel_debounce()
            self._drop_cache()
            self.results = []
            self.error = None
            return SearchInvalid(raw_input)

        if parsed.subject == self.cached_subject:
            self._cancel_debounce()
            return self._apply_filter(parsed)

        if self._inflight is not None and self._inflight.subject == parsed.subject:
            # Same subject already on the wire: follow the newest input.
            self._cancel_debounce()
            self._inflight.normalized = normalized
            return SearchPending(parsed.subject)

        self._debounce()
        return SearchPending(parsed.subject)

    def refresh(self) -> SearchOutcome:
        """Refetch the current subject immediately, bypassing the cache."""
        parsed = parse_search_input(self._current_input, self.subjects)
        if parsed is None:
            return SearchInvalid(self._current_input)
        self._cancel_debounce()
        task = asyncio.get_running_loop().create_task(self._perform(force=True))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)
        return SearchPending(parsed.subject)

    async def wait_idle(self) -> None:
        """Wait until no debounce window or fetch is outstanding."""
        while (self._timer is not None and self._timer.busy) or self._refreshes:
            if self._timer is not None:
                await self._timer.wait()
            if self._refreshes:
                await asyncio.gather(*self._refreshes, return_exceptions=True)

    # ---- Internals ----

    def _debounce(self) -> None:
        if self._timer is None:
            self._timer = CancellableTimer(self.debounce_delay, self._perform)
        self._timer.delay = self.debounce_delay
        self._timer.arm()

    def _cancel_debounce(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    def _drop_cache(self) -> None:
        self.cached_subject = None
        self.cached_courses = []

    def _is_current(self, intent: _FetchIntent) -> bool:
        return intent.seq == self._seq and intent.normalized == self._current_input

    async def _perform(self, force: bool = False) -> None:
        parsed = parse_search_input(self._current_input, self.subjects)
        if parsed is None:
            return
        if parsed.subject == self.cached_subject and not force:
            self._apply_filter(parsed)
            return

        self._seq += 1
        intent = _FetchIntent(self._seq, parsed.subject, self._current_input)
        self._inflight = intent
        roster = self.roster or ""

        try:
            courses = await self.scheduler.enqueue(
                partial(self._fetch_classes, roster, intent.subject)
            )
        except CatalogError as e:
            if not self._is_current(intent):
                log.debug("Discarding stale failure for %s (seq %d)", intent.subject, intent.seq)
                return
            self._inflight = None
            log.warning("Search for %s failed: %s", intent.subject, e)
            self.error = SearchFailed(intent.subject, friendly_message(e, "Subject"), e)
            self._publish(self.error)
            return
        except Exception:
            # Release the subject so the next submit fetches again.
            if self._inflight is intent:
                self._inflight = None
            log.exception("Search for %s failed unexpectedly", intent.subject)
            raise
        finally:
            if self._inflight is intent and not self._is_current(intent):
                self._inflight = None

        if not self._is_current(intent):
            log.debug("Discarding stale listing for %s (seq %d)", intent.subject, intent.seq)
            return

        self._inflight = None
        self.cached_subject = intent.subject
        self.cached_courses = courses
        self.error = None
        current = parse_search_input(self._current_input, self.subjects)
        self._apply_filter(current or ParsedQuery(intent.subject))

    def _apply_filter(self, parsed: ParsedQuery) -> SearchResults:
        self.results = filter_courses(self.cached_courses, parsed.query)
        self.error = None
        outcome = SearchResults(parsed.subject, parsed.query, self.results)
        self._publish(outcome)
        return outcome

    def _publish(self, outcome: SearchOutcome) -> None:
        if self.listener is not None:
            self.listener(outcome)
