"""
Shared infrastructure for bullhorn_auth.

Provides:
- Exception hierarchy and HTTP status classification
- Structured logging helpers and setup
- Token redaction for logs
- Named-event notification
- Recurring background driver
"""

from bullhorn_auth.common.events import LOGIN, LOGIN_FAILED, EventEmitter
from bullhorn_auth.common.exceptions import (
    AlreadyRunningError,
    ClientClosedError,
    AuthError,
    BullhornApiError,
    BullhornError,
    ConfigurationError,
    ErrorCategory,
    NotLoggedInError,
    classify_api_error,
    classify_http_status,
)
from bullhorn_auth.common.scheduling import RecurringTask, next_cron_run

__all__ = [
    # Events
    "EventEmitter",
    "LOGIN",
    "LOGIN_FAILED",
    # Errors
    "ErrorCategory",
    "BullhornError",
    "AuthError",
    "NotLoggedInError",
    "AlreadyRunningError",
    "ClientClosedError",
    "ConfigurationError",
    "BullhornApiError",
    "classify_api_error",
    "classify_http_status",
    # Scheduling
    "RecurringTask",
    "next_cron_run",
]
