"""
Error taxonomy for talking to the class catalog service.

Every failure the catalog client can produce is a ``CatalogError``. Callers
decide how to surface it; nothing in this package retries on its own.
"""

from __future__ import annotations

from typing import Optional


class CatalogError(Exception):
    """Base class for all catalog request failures."""


class NetworkError(CatalogError):
    """The request never produced an HTTP response (DNS, connect, timeout)."""


class RemoteError(CatalogError):
    """The service answered, but with a non-2xx status or a failure envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFound(RemoteError):
    pass


class RateLimited(RemoteError):
    pass


class ServerFault(RemoteError):
    pass


class ProtocolError(CatalogError):
    """The response body is not a well-formed catalog envelope."""


def remote_error_for_status(status_code: int, message: str = "") -> RemoteError:
    """Build the most specific RemoteError for an HTTP status code."""
    text = message or f"API error: {status_code}"
    if status_code == 404:
        return NotFound(text, status_code)
    if status_code == 429:
        return RateLimited(text, status_code)
    if status_code >= 500:
        return ServerFault(text, status_code)
    return RemoteError(text, status_code)


def friendly_message(error: BaseException, context: str = "Resource") -> str:
    """
    Turn a catalog failure into a short message fit for an end user.

    Args:
        error: The exception raised by a catalog call.
        context: What was being loaded, e.g. "Subject" or "Rosters".
    """
    if isinstance(error, NetworkError):
        return "Unable to connect. Check your internet connection."
    if isinstance(error, NotFound):
        return f"{context} not found."
    if isinstance(error, RateLimited):
        return "Too many requests. Please wait a moment."
    if isinstance(error, ServerFault):
        return "Catalog server error. Try again later."
    return str(error) or "An unexpected error occurred."
