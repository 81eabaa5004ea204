"""
Caching session client.

Returns a fresh request handle per call, backed by a session cached for a
fixed time. Concurrent cache misses share one in-flight acquisition.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import aiohttp

from bullhorn_auth.acquirer import TokenAcquirer
from bullhorn_auth.api import RestApi
from bullhorn_auth.base_client import BaseSessionClient
from bullhorn_auth.config import (
    DEFAULT_CACHE_TTL_MINUTES,
    DEFAULT_SESSION_TTL_MINUTES,
    BullhornConfig,
)
from bullhorn_auth.metrics import record_cache_request
from bullhorn_auth.schemas import CacheEntry, Credentials, Session


class CachingSessionClient(BaseSessionClient):
    """
    Lightweight client returning an authenticated RestApi per call.

    - A cached session is served until cache_ttl_minutes after its
      acquisition, with no network call.
    - On a miss exactly one acquisition runs; every caller that misses while
      it is in flight awaits the same result (session or error).
    - The in-flight slot is cleared on success and on failure, so the call
      after a failure starts a fresh acquisition.

    Usage:
        async with CachingSessionClient(credentials) as client:
            api = await client.get_client()
            candidate = await api.get("entity/Candidate/123", params={"fields": "id"})
    """

    log_component = "caching_client"

    def __init__(
        self,
        credentials: Credentials,
        acquirer: Optional[TokenAcquirer] = None,
        http: Optional[aiohttp.ClientSession] = None,
        session_ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES,
        cache_ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES,
        timeout_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
        acquirer_options: Optional[Dict[str, Any]] = None,
        client_name: Optional[str] = None,
    ):
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
        self.cache_ttl = timedelta(minutes=cache_ttl_minutes)
        self._entry: Optional[CacheEntry] = None
        self._inflight: Optional["asyncio.Future[Session]"] = None
        self.acquisitions = 0

    @classmethod
    def from_config(cls, config: BullhornConfig, **kwargs: Any) -> "CachingSessionClient":
        options = cls._config_kwargs(config)
        options["cache_ttl_minutes"] = config.cache_ttl_minutes
        options.update(kwargs)
        return cls(config.credentials(), **options)

    @property
    def cache_entry(self) -> Optional[CacheEntry]:
        return self._entry

    @property
    def is_fetching(self) -> bool:
        return self._inflight is not None

    async def get_client(self) -> RestApi:
        """
        Return a RestApi bound to a valid session.

        Raises:
            AuthError: If the acquisition this call waited on failed
        """
        entry = self._entry
        if entry is not None and entry.is_valid(self._clock()):
            record_cache_request("hit")
            return await self._bind(entry.session)

        if self._inflight is None:
            record_cache_request("miss")
            self._inflight = asyncio.ensure_future(self._fetch())
        else:
            record_cache_request("coalesced")
            self._log(logging.DEBUG, "Joining in-flight session acquisition")

        # Shielded: a cancelled caller must not cancel the shared acquisition
        session = await asyncio.shield(self._inflight)
        return await self._bind(session)

    def invalidate(self) -> None:
        """Drop the cached session; the next get_client() acquires a new one."""
        self._entry = None

    async def _fetch(self) -> Session:
        try:
            acquirer = await self._get_acquirer()
            self.acquisitions += 1
            session = await acquirer.acquire(
                self.credentials, ttl_minutes=self.session_ttl_minutes
            )
            valid_until = self._clock() + self.cache_ttl
            self._entry = CacheEntry(session=session, valid_until=valid_until)
            self._log(
                logging.INFO,
                "Cached Bullhorn session",
                session_expires=valid_until.isoformat(),
            )
            return session
        finally:
            self._inflight = None
