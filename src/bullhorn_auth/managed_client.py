"""
Managed session client.

Holds one long-lived Bullhorn session for a whole process, refreshes it
proactively before it expires and reports outcomes through named events.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

import aiohttp

from bullhorn_auth.acquirer import TokenAcquirer
from bullhorn_auth.api import RestApi
from bullhorn_auth.base_client import BaseSessionClient
from bullhorn_auth.common.events import LOGIN, LOGIN_FAILED, EventEmitter, Listener
from bullhorn_auth.common.exceptions import (
    AlreadyRunningError,
    ClientClosedError,
    NotLoggedInError,
)
from bullhorn_auth.common.scheduling import RecurringTask
from bullhorn_auth.config import (
    DEFAULT_REFRESH_EVERY_MINUTES,
    DEFAULT_REFRESH_MARGIN_HOURS,
    DEFAULT_SESSION_TTL_MINUTES,
    BullhornConfig,
)
from bullhorn_auth.metrics import record_refresh, session_expires_timestamp_seconds
from bullhorn_auth.probe import SessionExpiryProbe
from bullhorn_auth.schemas import Credentials, RequestSpec, Session


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    LOGGING_IN = "logging_in"
    LOGGED_IN = "logged_in"


class ManagedSessionClient(BaseSessionClient):
    """
    Long-lived client with proactive refresh.

    login() is a no-op while the current session outlives now + refresh
    margin. A failed refresh never replaces or clears a session that is still
    held; it is reported once through the "login_failed" event and login()
    returns normally.

    Usage:
        client = ManagedSessionClient.from_config(load_config())
        client.on("login", lambda session: print("logged in", session.base_url))
        client.on("login_failed", lambda error: print("login failed", error))
        await client.start_refresh_loop()
        result = await client.issue_request(RequestSpec(path="entity/Candidate/1"))
        ...
        await client.close()
    """

    log_component = "managed_client"

    def __init__(
        self,
        credentials: Credentials,
        acquirer: Optional[TokenAcquirer] = None,
        probe: Optional[SessionExpiryProbe] = None,
        http: Optional[aiohttp.ClientSession] = None,
        session_ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES,
        refresh_margin_hours: float = DEFAULT_REFRESH_MARGIN_HOURS,
        refresh_every_minutes: int = DEFAULT_REFRESH_EVERY_MINUTES,
        timeout_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
        acquirer_options: Optional[Dict[str, Any]] = None,
        scheduler_options: Optional[Dict[str, Any]] = None,
        client_name: Optional[str] = None,
    ):
        """
        Args:
            credentials: Login material
            acquirer: TokenAcquirer to use (built on the client's HTTP session when omitted)
            probe: SessionExpiryProbe to use (built on the client's HTTP session when omitted)
            http: Shared aiohttp session (owned and created lazily when omitted)
            session_ttl_minutes: Session lifetime requested at login (default: 2880)
            refresh_margin_hours: login() refreshes once expiry is closer than this (default: 6)
            refresh_every_minutes: Refresh loop cron step (default: 30)
            timeout_seconds: Per-request timeout (default: transport default)
            clock: Returns the current aware UTC time
            acquirer_options: Extra TokenAcquirer arguments
            scheduler_options: Extra RecurringTask arguments (clock, sleep)
            client_name: Label added to log records
        """
        super().__init__(
            credentials,
            acquirer=acquirer,
            http=http,
            session_ttl_minutes=session_ttl_minutes,
            timeout_seconds=timeout_seconds,
            clock=clock,
            acquirer_options=acquirer_options,
            client_name=client_name,
        )
        self.refresh_margin = timedelta(hours=refresh_margin_hours)
        self.refresh_every_minutes = refresh_every_minutes
        self.logged_in = False
        self._probe = probe
        self._owns_probe = probe is None
        self._session: Optional[Session] = None
        self._state = SessionState.LOGGED_OUT
        self._events = EventEmitter()
        self._scheduler_options = scheduler_options or {}
        self._refresh_task: Optional[RecurringTask] = None
        self._login_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: BullhornConfig, **kwargs: Any) -> "ManagedSessionClient":
        options = cls._config_kwargs(config)
        options["refresh_margin_hours"] = config.refresh_margin_hours
        options["refresh_every_minutes"] = config.refresh_every_minutes
        options.update(kwargs)
        return cls(config.credentials(), **options)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def api_url(self) -> Optional[str]:
        return self._session.base_url if self._session else None

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def refresh_loop_active(self) -> bool:
        return self._refresh_task is not None

    @property
    def api(self) -> RestApi:
        """
        RestApi bound to the current session and the client's HTTP session.

        Raises:
            NotLoggedInError: If no session is held
            ClientClosedError: If close() has released the HTTP session
        """
        session = self._require_session()
        if self._http is None or self._http.closed:
            raise ClientClosedError("Client is closed, reopen it before using api")
        return RestApi(session, http=self._http, timeout_seconds=self.timeout_seconds)

    def on(self, event: str, listener: Listener) -> Listener:
        return self._events.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self._events.off(event, listener)

    def _require_session(self) -> Session:
        session = self._session
        if session is None or not session.session_token:
            raise NotLoggedInError()
        return session

    def _settled_state(self) -> SessionState:
        return SessionState.LOGGED_IN if self.logged_in else SessionState.LOGGED_OUT

    def _session_is_fresh(self) -> bool:
        return self._session is not None and self._session.expires_after(
            self._clock() + self.refresh_margin
        )

    # =========================================================================
    # Operations
    # =========================================================================

    async def login(self) -> None:
        """
        Ensure a session that outlives the refresh margin.

        Never raises for acquisition failures: they are emitted as
        "login_failed" and the previous session stays in place.
        """
        async with self._login_lock:
            if self._session_is_fresh():
                record_refresh("skipped")
                self._log(
                    logging.DEBUG,
                    "Current session still valid, skipping login",
                    session_expires=self._session.expires_at.isoformat(),
                )
                return

            if self._session is not None:
                self._log(logging.INFO, "Session expiring soon, refreshing login")

            self._state = SessionState.LOGGING_IN
            try:
                acquirer = await self._get_acquirer()
                session = await acquirer.acquire(
                    self.credentials,
                    ttl_minutes=self.session_ttl_minutes,
                    probe=await self._get_probe(),
                )
            except Exception as e:
                record_refresh("failed")
                self._log_exception(e, "Bullhorn login failed", level=logging.WARNING)
                self._events.emit(LOGIN_FAILED, e)
            else:
                self._session = session
                self.logged_in = True
                self._state = SessionState.LOGGED_IN
                if session.expires_at is not None:
                    session_expires_timestamp_seconds.set(session.expires_at.timestamp())
                record_refresh("refreshed")
                self._log(
                    logging.INFO,
                    "Logged in to Bullhorn",
                    session_expires=(
                        session.expires_at.isoformat() if session.expires_at else None
                    ),
                )
                self._events.emit(LOGIN, session)
            finally:
                if self._state is SessionState.LOGGING_IN:
                    self._state = self._settled_state()

    async def ping(self) -> datetime:
        """
        Return the current session's expiry as reported by /ping.

        Raises:
            NotLoggedInError: If no session is held
            BullhornApiError: If /ping answers an error status
        """
        session = self._require_session()
        probe = await self._get_probe()
        return await probe.probe_expiry(session)

    async def issue_request(self, spec: RequestSpec) -> Any:
        """
        Send spec with the current session's base URL and token.

        Raises:
            NotLoggedInError: If no session is held
            BullhornApiError: If the REST call fails
        """
        session = self._require_session()
        api = await self._bind(session)
        return await api.request(spec)

    async def start_refresh_loop(self) -> RecurringTask:
        """
        Log in now, then every refresh_every_minutes on the cron grid.

        Raises:
            AlreadyRunningError: If a refresh loop is active
        """
        if self._refresh_task is not None:
            raise AlreadyRunningError("Login refresh loop already started")

        task = RecurringTask(
            self._scheduled_login,
            every_minutes=self.refresh_every_minutes,
            name="bullhorn-session-refresh",
            **self._scheduler_options,
        )
        self._refresh_task = task
        try:
            await self.login()
        except BaseException:
            if self._refresh_task is task:
                self._refresh_task = None
            raise

        # stop_refresh_loop() may have run during the initial login
        if self._refresh_task is task:
            task.start()
        return task

    def stop_refresh_loop(self) -> None:
        """Cancel future refreshes. A refresh already running completes."""
        task = self._refresh_task
        if task is None:
            return
        self._refresh_task = None
        task.stop()

    async def close(self) -> None:
        self.stop_refresh_loop()
        await super().close()
        if self._owns_probe:
            self._probe = None

    async def _scheduled_login(self) -> None:
        try:
            await self.login()
        except Exception as e:
            self._log_exception(e, "Scheduled login failed", level=logging.WARNING)
            self._events.emit(LOGIN_FAILED, e)

    async def _get_probe(self) -> SessionExpiryProbe:
        http = await self._ensure_session()
        if self._probe is None:
            self._probe = SessionExpiryProbe(http=http, timeout_seconds=self.timeout_seconds)
        return self._probe
