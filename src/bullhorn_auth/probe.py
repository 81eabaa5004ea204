"""Session expiry probe: the /ping liveness call."""

import logging
from datetime import datetime
from typing import Optional

import aiohttp
from pydantic import ValidationError

from bullhorn_auth.common.exceptions import AuthError, classify_api_error
from bullhorn_auth.common.logging import logged_operation
from bullhorn_auth.common.security import sanitize_url
from bullhorn_auth.http import HttpComponent
from bullhorn_auth.schemas import PingResponse, Session


class SessionExpiryProbe(HttpComponent):
    """
    Asks the REST endpoint when a session expires.

    GET {base_url}/ping?BhRestToken=... answers {"sessionExpires": <epoch ms>}.
    """

    log_component = "probe"

    def __init__(
        self,
        http: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(http=http, timeout_seconds=timeout_seconds)

    @logged_operation(level=logging.DEBUG)
    async def probe_expiry(self, session: Session) -> datetime:
        """
        Return the absolute (UTC) expiry of session.

        Raises:
            BullhornApiError: If /ping answers a non-2xx status
            AuthError: If the body carries no usable sessionExpires
        """
        http = await self._ensure_session()
        url = f"{session.base_url.rstrip('/')}/ping"
        async with http.request(
            "GET",
            url,
            params={"BhRestToken": session.session_token},
            **self._request_kwargs(),
        ) as response:
            if not 200 <= response.status < 300:
                raise classify_api_error(response.status, sanitize_url(url))
            data = await response.json(content_type=None)

        try:
            return PingResponse.model_validate(data).expires_at
        except ValidationError as e:
            raise AuthError("ping response has no sessionExpires", cause=e) from e
