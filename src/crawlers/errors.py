"""Error taxonomy for the scrape pipeline.

Every failure the pipeline can produce is one of these exceptions. Each
carries the caller-facing message and HTTP status it maps to, so the route
only has to render it. Internal detail (which SSRF rule fired, the address
that was blocked) goes into ``reason`` and is only ever logged.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    INVALID_INPUT = "invalid_input"
    SSRF_BLOCKED = "blocked"
    UPSTREAM_ERROR = "upstream_error"
    NOT_HTML = "not_html"
    TOO_LARGE = "too_large"
    TIMED_OUT = "timed_out"
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"


class ScrapeError(Exception):
    """Base class for all mapped pipeline failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    status_code: int = 500
    message: str = "Something went wrong while scraping."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        if message is not None:
            self.message = message
        self.reason = reason or self.message
        self.headers = headers or {}
        super().__init__(self.reason)


class UnauthenticatedError(ScrapeError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401
    message = "Authentication required."


class RateLimitedError(ScrapeError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429
    message = "Too many requests. Please wait a moment and try again."

    def __init__(self, retry_after_seconds: int):
        super().__init__(headers={"Retry-After": str(retry_after_seconds)})
        self.retry_after_seconds = retry_after_seconds


class InvalidInputError(ScrapeError):
    kind = ErrorKind.INVALID_INPUT
    status_code = 400
    message = "Invalid URL. Please enter a valid web address."


class SSRFBlockedError(ScrapeError):
    """Target (or a redirect hop) may not be dialed.

    The message is identical for every rule so callers cannot probe which
    one fired.
    """

    kind = ErrorKind.SSRF_BLOCKED
    status_code = 400
    message = "Invalid URL. Requests to private addresses are not allowed."

    def __init__(self, reason: str):
        super().__init__(reason=reason)


class RedirectLimitExceeded(SSRFBlockedError):
    def __init__(self, max_redirects: int):
        super().__init__(f"more than {max_redirects} redirects")
        self.max_redirects = max_redirects


class UpstreamError(ScrapeError):
    """Target answered with a non-success status, or the transport failed."""

    kind = ErrorKind.UPSTREAM_ERROR

    # upstream status -> (our status, message)
    STATUS_MAP = {
        404: (422, "Page not found. Please check the URL and try again."),
        429: (429, "Rate limited. Please wait a moment and try again."),
        403: (403, "Access denied. The site does not allow scraping."),
    }

    def __init__(self, upstream_status: Optional[int], reason: Optional[str] = None):
        self.upstream_status = upstream_status
        if upstream_status in self.STATUS_MAP:
            self.status_code, message = self.STATUS_MAP[upstream_status]
        else:
            self.status_code = 502
            if upstream_status is None:
                message = "Failed to fetch page."
            else:
                message = f"Failed to fetch page ({upstream_status})"
        super().__init__(message, reason=reason)


class NotHtmlError(ScrapeError):
    kind = ErrorKind.NOT_HTML
    status_code = 422
    message = "The URL did not return an HTML page. Only HTML recipe pages are supported."

    def __init__(self, content_type: str):
        super().__init__(reason=f"content-type {content_type!r}")
        self.content_type = content_type


class PayloadTooLargeError(ScrapeError):
    kind = ErrorKind.TOO_LARGE
    status_code = 422

    def __init__(self, max_bytes: int, reason: Optional[str] = None):
        megabytes = max_bytes / (1024 * 1024)
        super().__init__(f"Response too large (max {megabytes:g} MB).", reason=reason)
        self.max_bytes = max_bytes


class FetchTimeoutError(ScrapeError):
    kind = ErrorKind.TIMED_OUT
    status_code = 504
    message = "Request timed out. The site may be slow or unavailable."


class ExtractionFailedError(ScrapeError):
    kind = ErrorKind.NOT_FOUND
    status_code = 422
    message = (
        "Could not find recipe data on this page. "
        "The site may not use standard recipe markup."
    )


class UnexpectedScrapeError(ScrapeError):
    kind = ErrorKind.UNEXPECTED
    status_code = 500
