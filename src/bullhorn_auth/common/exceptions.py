"""
Errors raised by bullhorn_auth.

Every error carries an ErrorCategory so callers can tell a flaky network
(retry later) from rejected credentials (acquire a new session) from misuse
(fix the code). Acquisition itself never retries.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """
    What a caller should do about an error.

    TRANSIENT: try again later (timeouts, connection resets, 429, 5xx)
    AUTH: the session or credentials were refused; acquire a new session
    PERMANENT: retrying cannot help (404, bad configuration, client misuse)
    UNKNOWN: not classified
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class BullhornError(Exception):
    """
    Root of the bullhorn_auth error tree.

    Attributes:
        message: Description without the cause
        category: Class-level default, overridable per instance
        cause: Wrapped lower-level exception, if any
        context: Extra fields for logs (step, cluster, http_status, ...)
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = dict(context) if context else {}

    @property
    def is_retryable(self) -> bool:
        return self.category is not ErrorCategory.PERMANENT

    @property
    def should_refresh_auth(self) -> bool:
        return self.category is ErrorCategory.AUTH

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message} | Caused by: {self.cause}"


class AuthError(BullhornError):
    """
    No usable session could be obtained.

    hint is appended to the message. Acquisition failures point it at the
    Bullhorn consent page, since an API user who never accepted the terms
    in a browser cannot log in headlessly.
    """

    category = ErrorCategory.AUTH

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message, cause, context)
        self.hint = hint

    def __str__(self) -> str:
        text = super().__str__()
        return f"{text} | {self.hint}" if self.hint else text


class NotLoggedInError(AuthError):
    """ping() or issue_request() called on a client that holds no session."""

    def __init__(self, message: str = "Not logged in, try again in a few seconds"):
        super().__init__(message)


class AlreadyRunningError(BullhornError):
    category = ErrorCategory.PERMANENT


class ConfigurationError(BullhornError):
    category = ErrorCategory.PERMANENT


class ClientClosedError(BullhornError):
    """A closed client was used where an open HTTP session is required."""

    category = ErrorCategory.PERMANENT


class BullhornApiError(BullhornError):
    """An HTTP call answered an error status or never completed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        category: Optional[ErrorCategory] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        if category is not None:
            self.category = category


# Reason phrases used in BullhornApiError messages
_STATUS_LABELS = {
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    429: "Rate limited",
}


def classify_http_status(status_code: int) -> ErrorCategory:
    """
    Map an HTTP status to an ErrorCategory.

    401 means the BhRestToken expired or was revoked. 429 and 5xx are worth
    retrying. Any other 4xx is permanent.
    """
    if status_code == 401:
        return ErrorCategory.AUTH
    if status_code == 429 or status_code >= 500:
        return ErrorCategory.TRANSIENT
    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT
    return ErrorCategory.UNKNOWN


def classify_api_error(status: int, url: str) -> BullhornApiError:
    """Build the BullhornApiError for an error status on url (already sanitized)."""
    if status in _STATUS_LABELS:
        label = _STATUS_LABELS[status]
    elif status >= 500:
        label = "Server error"
    elif status >= 400:
        label = "Client error"
    else:
        label = "HTTP error"

    return BullhornApiError(
        f"{label} ({status}): {url}",
        status_code=status,
        category=classify_http_status(status),
    )
