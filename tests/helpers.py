"""Scripted HTTP doubles and canned Bullhorn responses shared by the tests."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

AUTH_URL = "https://auth-emea.bullhornstaffing.com/oauth"
REST_LOGIN_URL = "https://rest-emea.bullhornstaffing.com/rest-services/login"
REST_BASE_URL = "https://rest22.bullhornstaffing.com/rest-services/8xyz/"
PING_URL = "https://rest22.bullhornstaffing.com/rest-services/8xyz/ping"

# 2024-01-16 12:00:00 UTC
SESSION_EXPIRES_MS = 1705406400000
SESSION_EXPIRES_AT = datetime(2024, 1, 16, 12, 0, 0, tzinfo=timezone.utc)


class FakeResponse:
    """Async context manager mimicking an aiohttp response."""

    def __init__(
        self,
        status: int = 200,
        json_data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        error: Optional[BaseException] = None,
    ):
        self.status = status
        self._json = json_data
        self.headers = headers or {}
        self._error = error

    async def __aenter__(self) -> "FakeResponse":
        if self._error is not None:
            raise self._error
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        return False

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        return self._json


@dataclass
class RecordedCall:
    method: str
    url: str
    kwargs: Dict[str, Any] = field(default_factory=dict)

    @property
    def params(self) -> Dict[str, Any]:
        return self.kwargs.get("params") or {}

    @property
    def data(self) -> Any:
        return self.kwargs.get("data")


class FakeHttp:
    """
    Scripted aiohttp.ClientSession.

    Responses are registered per (method, url). Several responses for the
    same route are served in order; the last one repeats. Every call is
    recorded in self.calls.
    """

    def __init__(self) -> None:
        self.closed = False
        self.calls: List[RecordedCall] = []
        self._routes: Dict[Tuple[str, str], List[FakeResponse]] = {}

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        error: Optional[BaseException] = None,
    ) -> "FakeHttp":
        self._routes.setdefault((method.upper(), url), []).append(
            FakeResponse(status=status, json_data=json, headers=headers, error=error)
        )
        return self

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(RecordedCall(method.upper(), str(url), kwargs))
        queue = self._routes.get((method.upper(), str(url)))
        if not queue:
            raise AssertionError(f"Unexpected request: {method} {url}")
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def calls_to(self, url: str) -> List[RecordedCall]:
        return [call for call in self.calls if call.url == url]

    async def close(self) -> None:
        self.closed = True


def script_login_flow(
    http: FakeHttp,
    token: str = "tok-1",
    expires_ms: float = SESSION_EXPIRES_MS,
    ping_status: int = 200,
) -> FakeHttp:
    """Register a successful authorize/token/login/ping exchange on the emea cluster."""
    http.add(
        "POST",
        f"{AUTH_URL}/authorize",
        status=302,
        headers={"Location": "https://callback.example/?code=abc123&client_id=client-1"},
    )
    http.add("POST", f"{AUTH_URL}/token", json={"access_token": "access-1", "expires_in": 600})
    http.add("GET", REST_LOGIN_URL, json={"restUrl": REST_BASE_URL, "BhRestToken": token})
    http.add("GET", PING_URL, status=ping_status, json={"sessionExpires": expires_ms})
    return http



class FakeClock:
    """Settable clock returning aware datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now
