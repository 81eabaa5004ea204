"""
bullhorn_auth - Bullhorn REST session acquisition and lifecycle management.

Two clients over one acquisition flow:

- CachingSessionClient: per-call RestApi handles, session cached for 30
  minutes, concurrent misses coalesced into one acquisition
- ManagedSessionClient: one long-lived session, refreshed when it is within
  6 hours of expiry, with "login" / "login_failed" events and a cron-aligned
  refresh loop

Example:
    >>> from bullhorn_auth import BullhornConfig, ManagedSessionClient
    >>> client = ManagedSessionClient.from_config(BullhornConfig.load_config())
    >>> await client.start_refresh_loop()
"""

from bullhorn_auth.acquirer import TokenAcquirer
from bullhorn_auth.api import RestApi
from bullhorn_auth.caching_client import CachingSessionClient
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
)
from bullhorn_auth.common.scheduling import RecurringTask
from bullhorn_auth.config import BullhornConfig
from bullhorn_auth.discovery import discover_cluster, universal_login
from bullhorn_auth.managed_client import ManagedSessionClient, SessionState
from bullhorn_auth.probe import SessionExpiryProbe
from bullhorn_auth.schemas import CacheEntry, Credentials, RequestSpec, Session

__version__ = "0.1.0"

__all__ = [
    # Clients
    "CachingSessionClient",
    "ManagedSessionClient",
    "SessionState",
    "RestApi",
    # Acquisition
    "TokenAcquirer",
    "SessionExpiryProbe",
    "discover_cluster",
    "universal_login",
    # Data
    "Credentials",
    "Session",
    "CacheEntry",
    "RequestSpec",
    "BullhornConfig",
    # Events and scheduling
    "EventEmitter",
    "LOGIN",
    "LOGIN_FAILED",
    "RecurringTask",
    # Errors
    "ErrorCategory",
    "BullhornError",
    "AuthError",
    "NotLoggedInError",
    "AlreadyRunningError",
    "ClientClosedError",
    "ConfigurationError",
    "BullhornApiError",
]
