"""
Feed error taxonomy and its HTTP mapping.

Validation and authentication failures are detected before any query runs and
are reported as client errors. Storage and social-graph failures abort the
request and surface as a generic feed-fetch failure. Cache faults never leave
the feed layer: they are downgraded to a miss (read) or a no-op (write).
"""
from __future__ import annotations

from typing import Optional


class FeedError(Exception):
    """Base class for every error raised by the feed core."""

    code = "FEED_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FeedError):
    """A required parameter is missing or malformed."""

    code = "VALIDATION_ERROR"


class AuthenticationRequiredError(FeedError):
    """A personalized feed was requested without a viewer."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class UpstreamQueryError(FeedError):
    """A storage or social-graph lookup failed."""

    code = "UPSTREAM_ERROR"


class FeedFetchError(FeedError):
    """Assembly of a feed page failed after the cache check."""

    code = "FEED_ERROR"

    def __init__(self, feed_type: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Failed to fetch {feed_type} feed")
        self.feed_type = feed_type


class CacheFault(Exception):
    """Raised by cache backends. Callers treat it as a miss or a skipped write."""


# ---------------------------------------------------------------------------
# HTTP mapping: (error class, status code). First match wins, so subclasses
# must be listed before their bases.
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_UNAUTHORIZED = 401
STATUS_INTERNAL_ERROR = 500

FEED_ERROR_RULES: list[tuple[type[FeedError], int]] = [
    (ValidationError, STATUS_BAD_REQUEST),
    (AuthenticationRequiredError, STATUS_UNAUTHORIZED),
    (FeedFetchError, STATUS_INTERNAL_ERROR),
]


def feed_error_status(exc: FeedError) -> int:
    for error_cls, status_code in FEED_ERROR_RULES:
        if isinstance(exc, error_cls):
            return status_code
    return STATUS_INTERNAL_ERROR


def feed_error_body(exc: FeedError) -> dict:
    """
    Structured error payload. Server-side faults never leak their internal
    message; only the generic feed-fetch text is returned.
    """
    status_code = feed_error_status(exc)
    if status_code >= STATUS_INTERNAL_ERROR and not isinstance(exc, FeedFetchError):
        return {
            "success": False,
            "error": {"code": FeedFetchError.code, "message": "Failed to fetch feed"},
        }
    return {"success": False, "error": {"code": exc.code, "message": exc.message}}
