"""
Search — input parsing, local filtering, and the debounced search coordinator.
"""

from seatwatch.search.coordinator import (
    ParsedQuery,
    SearchCoordinator,
    SearchFailed,
    SearchInvalid,
    SearchOutcome,
    SearchPending,
    SearchResults,
    filter_courses,
    parse_search_input,
)

__all__ = [
    "ParsedQuery",
    "SearchCoordinator",
    "SearchFailed",
    "SearchInvalid",
    "SearchOutcome",
    "SearchPending",
    "SearchResults",
    "filter_courses",
    "parse_search_input",
]
