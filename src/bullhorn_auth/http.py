"""
Shared aiohttp session ownership.

Components accept an injected aiohttp.ClientSession. When none is given they
create their own on first use and close it in close(); an injected session is
never closed by the component.
"""

from typing import Any, Dict, Optional

import aiohttp

from bullhorn_auth.common.logging import LoggedClass


class HttpComponent(LoggedClass):
    """Base for classes that issue HTTP calls through aiohttp."""

    def __init__(
        self,
        http: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Args:
            http: Shared aiohttp session (owned and created lazily when None)
            timeout_seconds: Total per-request timeout; None leaves the
                transport's own timeout configuration in charge
        """
        self._http = http
        self._owns_http = http is None
        self.timeout_seconds = timeout_seconds
        super().__init__()

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Create aiohttp session if not exists."""
        if self._http is None or (self._owns_http and self._http.closed):
            self._http = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
            )
            self._owns_http = True
        return self._http

    def _request_kwargs(self) -> Dict[str, Any]:
        if self.timeout_seconds is None:
            return {}
        return {"timeout": aiohttp.ClientTimeout(total=self.timeout_seconds)}

    async def close(self) -> None:
        """Close the HTTP session if this component created it."""
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        if self._owns_http:
            self._http = None
