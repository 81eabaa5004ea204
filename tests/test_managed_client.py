"""Tests for ManagedSessionClient."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bullhorn_auth.common.events import LOGIN, LOGIN_FAILED
from bullhorn_auth.common.exceptions import (
    AlreadyRunningError,
    AuthError,
    BullhornApiError,
    ClientClosedError,
    NotLoggedInError,
)
from bullhorn_auth.config import BullhornConfig
from bullhorn_auth.managed_client import ManagedSessionClient, SessionState
from bullhorn_auth.schemas import RequestSpec, Session
from helpers import (
    AUTH_URL,
    PING_URL,
    REST_BASE_URL,
    REST_LOGIN_URL,
    SESSION_EXPIRES_AT,
    FakeClock,
)

# 24h before SESSION_EXPIRES_AT
FRESH = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
# 5h before SESSION_EXPIRES_AT
EXPIRING = datetime(2024, 1, 16, 7, 0, 0, tzinfo=timezone.utc)


def make_session(token: str = "tok-1", expires_at: datetime = SESSION_EXPIRES_AT) -> Session:
    return Session(base_url=REST_BASE_URL, session_token=token, expires_at=expires_at)


async def block_forever(seconds: float) -> None:
    await asyncio.Event().wait()


@pytest.fixture
def clock():
    return FakeClock(FRESH)


@pytest.fixture
def mock_acquirer():
    """Acquirer handing out tok-1, tok-2, ... on successive calls."""
    mock = MagicMock()
    counter = {"n": 0}

    async def acquire(credentials, ttl_minutes=2880, probe=None):
        counter["n"] += 1
        return make_session(f"tok-{counter['n']}")

    mock.acquire = AsyncMock(side_effect=acquire)
    return mock


@pytest.fixture
def client(credentials, mock_acquirer, fake_http, clock):
    return ManagedSessionClient(
        credentials,
        acquirer=mock_acquirer,
        http=fake_http,
        clock=clock,
        scheduler_options={"sleep": block_forever},
    )


class TestLogin:
    """Tests for login() and the refresh margin."""

    @pytest.mark.asyncio
    async def test_full_exchange_stores_session_with_expiry(self, credentials, login_http, clock):
        client = ManagedSessionClient(credentials, http=login_http, clock=clock)
        logins = []
        client.on(LOGIN, logins.append)

        await client.login()

        assert client.logged_in
        assert client.state == SessionState.LOGGED_IN
        assert client.session.session_token == "tok-1"
        assert client.session.expires_at == SESSION_EXPIRES_AT
        assert logins == [client.session]
        assert len(login_http.calls_to(PING_URL)) == 1

    @pytest.mark.asyncio
    async def test_starts_logged_out(self, client):
        assert client.state == SessionState.LOGGED_OUT
        assert client.logged_in is False
        assert client.session is None

    @pytest.mark.asyncio
    async def test_login_is_noop_while_outside_margin(self, client, mock_acquirer, clock):
        await client.login()
        clock.advance(hours=17, minutes=59)

        await client.login()

        assert mock_acquirer.acquire.await_count == 1
        assert client.session.session_token == "tok-1"

    @pytest.mark.asyncio
    async def test_login_refreshes_inside_margin(self, client, mock_acquirer, clock):
        await client.login()
        clock.now = EXPIRING

        await client.login()

        assert mock_acquirer.acquire.await_count == 2
        assert client.session.session_token == "tok-2"
        assert client.state == SessionState.LOGGED_IN

    @pytest.mark.asyncio
    async def test_login_refreshes_exactly_at_margin(self, client, mock_acquirer, clock):
        await client.login()
        clock.now = datetime(2024, 1, 16, 6, 0, 0, tzinfo=timezone.utc)

        await client.login()

        assert mock_acquirer.acquire.await_count == 2

    @pytest.mark.asyncio
    async def test_session_without_expiry_is_refreshed(self, client, mock_acquirer):
        mock_acquirer.acquire = AsyncMock(
            return_value=Session(base_url=REST_BASE_URL, session_token="tok-x")
        )
        await client.login()

        await client.login()

        assert mock_acquirer.acquire.await_count == 2

    @pytest.mark.asyncio
    async def test_custom_margin(self, credentials, mock_acquirer, fake_http, clock):
        client = ManagedSessionClient(
            credentials,
            acquirer=mock_acquirer,
            http=fake_http,
            clock=clock,
            refresh_margin_hours=1,
        )
        await client.login()
        clock.now = EXPIRING

        await client.login()

        assert mock_acquirer.acquire.await_count == 1

    @pytest.mark.asyncio
    async def test_acquirer_gets_probe_and_ttl(self, client, mock_acquirer, credentials):
        await client.login()

        args, kwargs = mock_acquirer.acquire.await_args
        assert args == (credentials,)
        assert kwargs["ttl_minutes"] == 2880
        assert kwargs["probe"] is not None

    @pytest.mark.asyncio
    async def test_concurrent_logins_acquire_once(self, credentials, fake_http, clock):
        gate = asyncio.Event()
        acquirer = MagicMock()

        async def acquire(credentials, ttl_minutes=2880, probe=None):
            await gate.wait()
            return make_session()

        acquirer.acquire = AsyncMock(side_effect=acquire)
        client = ManagedSessionClient(credentials, acquirer=acquirer, http=fake_http, clock=clock)

        calls = [asyncio.ensure_future(client.login()) for _ in range(3)]
        await asyncio.sleep(0)
        assert client.state == SessionState.LOGGING_IN
        gate.set()
        await asyncio.gather(*calls)

        assert acquirer.acquire.await_count == 1


class TestLoginFailure:
    """Tests for failed logins and the login_failed event."""

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_session(self, client, mock_acquirer, clock):
        await client.login()
        previous = client.session
        error = AuthError("Failed to get Bullhorn session (token step)")
        mock_acquirer.acquire = AsyncMock(side_effect=error)
        failures = []
        client.on(LOGIN_FAILED, failures.append)
        clock.now = EXPIRING

        await client.login()

        assert failures == [error]
        assert client.session is previous
        assert client.logged_in is True
        assert client.state == SessionState.LOGGED_IN

    @pytest.mark.asyncio
    async def test_failed_first_login_stays_logged_out(self, client, mock_acquirer):
        mock_acquirer.acquire = AsyncMock(side_effect=AuthError("bad credentials"))
        failures = []
        client.on(LOGIN_FAILED, failures.append)

        await client.login()

        assert len(failures) == 1
        assert client.session is None
        assert client.logged_in is False
        assert client.state == SessionState.LOGGED_OUT

    @pytest.mark.asyncio
    async def test_failed_refresh_does_not_emit_login(self, client, mock_acquirer, clock):
        await client.login()
        logins = []
        client.on(LOGIN, logins.append)
        mock_acquirer.acquire = AsyncMock(side_effect=AuthError("boom"))
        clock.now = EXPIRING

        await client.login()

        assert logins == []

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_login(self, client):
        received = []

        def broken(session):
            raise RuntimeError("listener bug")

        client.on(LOGIN, broken)
        client.on(LOGIN, received.append)

        await client.login()

        assert client.logged_in
        assert received == [client.session]

    @pytest.mark.asyncio
    async def test_off_unsubscribes(self, client):
        received = []
        client.on(LOGIN, received.append)
        client.off(LOGIN, received.append)

        await client.login()

        assert received == []


class TestPing:
    """Tests for ping()."""

    @pytest.mark.asyncio
    async def test_ping_without_session(self, client):
        with pytest.raises(NotLoggedInError) as exc_info:
            await client.ping()

        assert isinstance(exc_info.value, AuthError)

    @pytest.mark.asyncio
    async def test_ping_returns_reported_expiry(self, client, fake_http):
        await client.login()
        fake_http.add("GET", PING_URL, json={"sessionExpires": 1705449600000})

        expires_at = await client.ping()

        assert expires_at == datetime(2024, 1, 17, 0, 0, 0, tzinfo=timezone.utc)
        assert client.session.expires_at == SESSION_EXPIRES_AT

    @pytest.mark.asyncio
    async def test_ping_error_propagates(self, client, fake_http):
        await client.login()
        fake_http.add("GET", PING_URL, status=401)

        with pytest.raises(BullhornApiError):
            await client.ping()

        assert client.logged_in


class TestIssueRequest:
    """Tests for issue_request() and the api handle."""

    @pytest.mark.asyncio
    async def test_request_before_login(self, client, fake_http):
        with pytest.raises(NotLoggedInError, match="Not logged in"):
            await client.issue_request(RequestSpec(path="entity/Candidate/1"))

        assert fake_http.calls == []

    @pytest.mark.asyncio
    async def test_request_uses_current_session(self, client, fake_http):
        await client.login()
        url = f"{REST_BASE_URL}entity/Candidate/1"
        fake_http.add("GET", url, json={"data": {"id": 1}})

        result = await client.issue_request(
            RequestSpec(path="entity/Candidate/1", params={"fields": "id"})
        )

        assert result == {"data": {"id": 1}}
        assert fake_http.calls[0].params == {"fields": "id", "BhRestToken": "tok-1"}

    @pytest.mark.asyncio
    async def test_api_property(self, client):
        with pytest.raises(NotLoggedInError):
            client.api

        await client.login()

        assert client.api.session is client.session


class TestRefreshLoop:
    """Tests for start_refresh_loop() / stop_refresh_loop()."""

    @pytest.mark.asyncio
    async def test_start_logs_in_immediately(self, client, mock_acquirer):
        task = await client.start_refresh_loop()
        try:
            assert client.logged_in
            assert task.is_running
            assert task.cron_expression == "*/30 * * * *"
            assert mock_acquirer.acquire.await_count == 1
        finally:
            client.stop_refresh_loop()

    @pytest.mark.asyncio
    async def test_second_start_raises(self, client):
        await client.start_refresh_loop()
        try:
            with pytest.raises(AlreadyRunningError):
                await client.start_refresh_loop()
        finally:
            client.stop_refresh_loop()

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, client):
        first = await client.start_refresh_loop()
        client.stop_refresh_loop()
        await first.join()

        second = await client.start_refresh_loop()
        try:
            assert second is not first
            assert second.is_running
            assert not first.is_running
        finally:
            client.stop_refresh_loop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, client):
        client.stop_refresh_loop()
        await client.start_refresh_loop()
        client.stop_refresh_loop()
        client.stop_refresh_loop()

        assert client.refresh_loop_active is False

    @pytest.mark.asyncio
    async def test_start_with_failing_login_still_schedules(self, client, mock_acquirer):
        mock_acquirer.acquire = AsyncMock(side_effect=AuthError("down"))
        failures = []
        client.on(LOGIN_FAILED, failures.append)

        task = await client.start_refresh_loop()
        try:
            assert len(failures) == 1
            assert task.is_running
        finally:
            client.stop_refresh_loop()

    @pytest.mark.asyncio
    async def test_tick_refreshes_expiring_session(
        self, credentials, mock_acquirer, fake_http, clock
    ):
        ticks: asyncio.Queue = asyncio.Queue()

        async def sleep(seconds):
            await ticks.get()

        client = ManagedSessionClient(
            credentials,
            acquirer=mock_acquirer,
            http=fake_http,
            clock=clock,
            scheduler_options={"sleep": sleep},
        )
        refreshed = asyncio.Event()
        client.on(LOGIN, lambda session: refreshed.set())

        await client.start_refresh_loop()
        refreshed.clear()
        clock.now = EXPIRING
        ticks.put_nowait(None)
        await asyncio.wait_for(refreshed.wait(), timeout=1)
        client.stop_refresh_loop()

        assert client.session.session_token == "tok-2"

    @pytest.mark.asyncio
    async def test_tick_failure_reported_and_loop_survives(
        self, credentials, mock_acquirer, fake_http, clock
    ):
        ticks: asyncio.Queue = asyncio.Queue()

        async def sleep(seconds):
            await ticks.get()

        client = ManagedSessionClient(
            credentials,
            acquirer=mock_acquirer,
            http=fake_http,
            clock=clock,
            scheduler_options={"sleep": sleep},
        )
        failed = asyncio.Event()
        client.on(LOGIN_FAILED, lambda error: failed.set())

        task = await client.start_refresh_loop()
        mock_acquirer.acquire = AsyncMock(side_effect=AuthError("down"))
        clock.now = EXPIRING
        ticks.put_nowait(None)
        await asyncio.wait_for(failed.wait(), timeout=1)

        assert task.is_running
        assert client.session.session_token == "tok-1"
        client.stop_refresh_loop()

    @pytest.mark.asyncio
    async def test_stop_lets_running_refresh_complete(
        self, credentials, fake_http, clock
    ):
        ticks: asyncio.Queue = asyncio.Queue()
        started = asyncio.Event()
        gate = asyncio.Event()
        acquirer = MagicMock()
        tokens = iter(["tok-1", "tok-2"])

        async def acquire(credentials, ttl_minutes=2880, probe=None):
            token = next(tokens)
            if token == "tok-2":
                started.set()
                await gate.wait()
            return make_session(token)

        async def sleep(seconds):
            await ticks.get()

        acquirer.acquire = AsyncMock(side_effect=acquire)
        client = ManagedSessionClient(
            credentials,
            acquirer=acquirer,
            http=fake_http,
            clock=clock,
            scheduler_options={"sleep": sleep},
        )
        refreshed = asyncio.Event()

        task = await client.start_refresh_loop()
        client.on(LOGIN, lambda session: refreshed.set())
        clock.now = EXPIRING
        ticks.put_nowait(None)
        await asyncio.wait_for(started.wait(), timeout=1)

        client.stop_refresh_loop()
        gate.set()
        await asyncio.wait_for(refreshed.wait(), timeout=1)
        await task.join()

        assert client.session.session_token == "tok-2"
        assert not task.is_running

    @pytest.mark.asyncio
    async def test_close_stops_loop(self, client, fake_http):
        task = await client.start_refresh_loop()

        await client.close()
        await task.join()

        assert not task.is_running
        assert fake_http.closed is False


class TestFromConfig:
    """Tests for construction from BullhornConfig."""

    @pytest.mark.asyncio
    async def test_from_config(self, login_http):
        config = BullhornConfig(
            username="api.user",
            password="s3cret-pass",
            client_id="client-1",
            client_secret="client-secret-1",
            refresh_margin_hours=2,
            refresh_every_minutes=15,
        )

        client = ManagedSessionClient.from_config(config, http=login_http)
        await client.login()

        assert client.refresh_every_minutes == 15
        assert client.session.expires_at == SESSION_EXPIRES_AT
        assert login_http.calls_to(REST_LOGIN_URL)[0].params["ttl"] == "2880"


class TestCloseAndReopen:
    """Tests for a client owning its HTTP session across close()."""

    @pytest.mark.asyncio
    async def test_reopened_client_pings_and_logs_in_on_new_http_session(
        self, credentials, owned_sessions, clock
    ):
        client = ManagedSessionClient(credentials, clock=clock)
        failures = []
        client.on(LOGIN_FAILED, failures.append)
        async with client:
            await client.login()

        async with client:
            expires_at = await client.ping()
            clock.now = EXPIRING
            await client.login()

        assert expires_at == SESSION_EXPIRES_AT
        assert failures == []
        assert client.logged_in
        assert len(owned_sessions) == 2
        assert owned_sessions[0].closed
        assert len(owned_sessions[1].calls_to(f"{AUTH_URL}/authorize")) == 1
        assert len(owned_sessions[1].calls_to(PING_URL)) == 2

    @pytest.mark.asyncio
    async def test_api_after_close_raises(self, credentials, owned_sessions, clock):
        client = ManagedSessionClient(credentials, clock=clock)
        async with client:
            await client.login()
            assert client.api.session is client.session

        with pytest.raises(ClientClosedError):
            client.api

        assert len(owned_sessions) == 1
