"""Base class shared by the caching and managed session clients."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import aiohttp

from bullhorn_auth.acquirer import TokenAcquirer
from bullhorn_auth.api import RestApi
from bullhorn_auth.config import DEFAULT_SESSION_TTL_MINUTES, BullhornConfig
from bullhorn_auth.http import HttpComponent
from bullhorn_auth.schemas import Credentials, Session


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseSessionClient(HttpComponent):
    """
    Owns the credentials, the HTTP session and the TokenAcquirer of a client.

    Nothing here is shared across instances: each client builds its own
    acquirer on the client's HTTP session unless one is injected.
    """

    def __init__(
        self,
        credentials: Credentials,
        acquirer: Optional[TokenAcquirer] = None,
        http: Optional[aiohttp.ClientSession] = None,
        session_ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES,
        timeout_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
        acquirer_options: Optional[Dict[str, Any]] = None,
        client_name: Optional[str] = None,
    ):
        """
        Args:
            credentials: Login material, fixed for the client's lifetime
            acquirer: TokenAcquirer to use (built on the client's HTTP session when omitted)
            http: Shared aiohttp session (owned and created lazily when omitted)
            session_ttl_minutes: Session lifetime requested at login
            timeout_seconds: Per-request timeout (default: transport default)
            clock: Returns the current aware UTC time
            acquirer_options: Extra TokenAcquirer arguments (endpoint templates, consent URL)
            client_name: Label added to log records
        """
        self.credentials = credentials
        self.cluster = credentials.cluster
        self.client_name = client_name
        self.session_ttl_minutes = session_ttl_minutes
        self._acquirer = acquirer
        self._owns_acquirer = acquirer is None
        self._acquirer_options = acquirer_options or {}
        self._clock = clock or utcnow
        super().__init__(http=http, timeout_seconds=timeout_seconds)

    @classmethod
    def _config_kwargs(cls, config: BullhornConfig) -> Dict[str, Any]:
        return {
            "session_ttl_minutes": config.session_ttl_minutes,
            "timeout_seconds": config.request_timeout_seconds,
            "acquirer_options": {
                "auth_url_template": config.auth_url_template,
                "rest_url_template": config.rest_url_template,
                "consent_url": config.consent_url,
            },
        }

    async def _get_acquirer(self) -> TokenAcquirer:
        http = await self._ensure_session()
        if self._acquirer is None:
            self._acquirer = TokenAcquirer(
                http=http,
                timeout_seconds=self.timeout_seconds,
                **self._acquirer_options,
            )
        return self._acquirer

    async def _bind(self, session: Session) -> RestApi:
        """Return a request handle bound to session on the client's HTTP session."""
        http = await self._ensure_session()
        return RestApi(session, http=http, timeout_seconds=self.timeout_seconds)

    async def close(self) -> None:
        """Close an owned HTTP session and forget the acquirer built on it."""
        await super().close()
        if self._owns_acquirer:
            self._acquirer = None
