"""Request failures and the generic responses they map to."""
from __future__ import annotations

import enum


class RejectionReason(str, enum.Enum):
    TRAVERSAL = "traversal"
    UNAUTHORIZED = "unauthorized"
    BAD_EXTENSION = "bad-extension"
    ESCAPE = "escape"


class SiteError(Exception):
    """Base class for failures that end a request with a generic response.

    ``public_message`` is the only text a client ever sees; ``log_reason``
    is recorded server-side.
    """

    status_code = 500
    public_message = "Server Error"
    log_reason = "error"


class RateLimitExceeded(SiteError):
    status_code = 429
    public_message = "Too Many Requests"
    log_reason = "rate-limit"


class PathRejected(SiteError):
    """Raised when a requested path fails validation."""

    status_code = 403
    public_message = "Forbidden"

    def __init__(self, reason: RejectionReason) -> None:
        super().__init__(reason.value)
        self.reason = reason

    @property
    def log_reason(self) -> str:  # type: ignore[override]
        return self.reason.value


class NotFound(SiteError):
    status_code = 404
    public_message = "Page not found."
    log_reason = "not-found"


class MethodNotAllowed(SiteError):
    status_code = 405
    public_message = "Method Not Allowed"
    log_reason = "method-not-allowed"


class ReadFailure(SiteError):
    status_code = 500
    public_message = "Server Error"
    log_reason = "read-failure"
