"""
Authenticated Bullhorn REST request capability.

A RestApi is bound to one Session: every request resolves its path against
the session base URL and carries the BhRestToken query parameter.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from bullhorn_auth.common.exceptions import (
    BullhornApiError,
    ErrorCategory,
    classify_api_error,
)
from bullhorn_auth.common.logging import logged_operation
from bullhorn_auth.common.security import sanitize_url
from bullhorn_auth.http import HttpComponent
from bullhorn_auth.schemas import RequestSpec, Session

TOKEN_PARAM = "BhRestToken"


class RestApi(HttpComponent):
    """
    Request handle pre-bound to a session's base URL and token.

    Usage:
        api = await caching_client.get_client()
        candidate = await api.get("entity/Candidate/123", params={"fields": "id,firstName"})
        await api.request(RequestSpec(method="POST", path="entity/Note/1", json_body={...}))
    """

    log_component = "rest_api"

    def __init__(
        self,
        session: Session,
        http: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Args:
            session: Session whose base URL and token are injected
            http: Shared aiohttp session (owned when omitted)
            timeout_seconds: Per-request timeout (default: transport default)
        """
        self.session = session
        self.api_url = sanitize_url(session.base_url)
        super().__init__(http=http, timeout_seconds=timeout_seconds)

    @property
    def base_url(self) -> str:
        return self.session.base_url

    def url_for(self, path: str) -> str:
        """Resolve path against the base URL; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    @logged_operation(level=logging.DEBUG)
    async def request(self, spec: RequestSpec) -> Any:
        """
        Send spec with the session token injected.

        Returns:
            Parsed JSON body (None for an empty body)

        Raises:
            BullhornApiError: On error status, timeout or connection failure
        """
        http = await self._ensure_session()
        url = self.url_for(spec.path)
        params: Dict[str, Any] = {**spec.params, TOKEN_PARAM: self.session.session_token}

        kwargs: Dict[str, Any] = {"params": params}
        if spec.json_body is not None:
            kwargs["json"] = spec.json_body
        if spec.data is not None:
            kwargs["data"] = spec.data
        if spec.headers:
            kwargs["headers"] = spec.headers
        kwargs.update(self._request_kwargs())

        try:
            async with http.request(spec.method, url, **kwargs) as response:
                if not 200 <= response.status < 300:
                    error = classify_api_error(response.status, sanitize_url(url))
                    self._log(
                        logging.WARNING,
                        "API request failed",
                        api_endpoint=spec.path,
                        api_method=spec.method,
                        http_status=response.status,
                        error_category=error.category.value,
                    )
                    raise error

                return await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise BullhornApiError(
                f"Timeout after {self.timeout_seconds}s: {sanitize_url(url)}",
                category=ErrorCategory.TRANSIENT,
            ) from e

        except aiohttp.ClientError as e:
            raise BullhornApiError(
                f"Connection error: {e}",
                category=ErrorCategory.TRANSIENT,
            ) from e

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request(RequestSpec(method="GET", path=path, params=params or {}))

    async def post(
        self,
        path: str,
        json_body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        return await self.request(
            RequestSpec(method="POST", path=path, json_body=json_body, params=params or {})
        )

    async def put(
        self,
        path: str,
        json_body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        return await self.request(
            RequestSpec(method="PUT", path=path, json_body=json_body, params=params or {})
        )

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request(
            RequestSpec(method="DELETE", path=path, params=params or {})
        )
