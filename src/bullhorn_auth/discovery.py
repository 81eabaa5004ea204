"""
Account lookups that need no OAuth client.

- discover_cluster: which Bullhorn cluster (emea, emea9, us, ...) a user lives on
- universal_login: one-call REST session through the universal-login service
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp
from pydantic import ValidationError

from bullhorn_auth.common.exceptions import AuthError, classify_api_error
from bullhorn_auth.common.logging import get_logger, log_with_context
from bullhorn_auth.common.security import sanitize_url
from bullhorn_auth.schemas import LoginInfoResponse, Session, UniversalLoginResponse

logger = get_logger(__name__)

LOGIN_INFO_URL = "https://rest.bullhornstaffing.com/rest-services/loginInfo"
UNIVERSAL_LOGIN_URL = "https://universal.bullhornstaffing.com/universal-login/session/login"
REST_SESSION_NAME = "rest"


@asynccontextmanager
async def _http_session(
    http: Optional[aiohttp.ClientSession],
) -> AsyncIterator[aiohttp.ClientSession]:
    if http is not None:
        yield http
        return
    async with aiohttp.ClientSession(headers={"Accept": "application/json"}) as owned:
        yield owned


async def discover_cluster(
    username: str,
    http: Optional[aiohttp.ClientSession] = None,
    url: str = LOGIN_INFO_URL,
) -> str:
    """
    Look up the cluster a username belongs to.

    loginInfo answers e.g. {"oauthUrl": "https://auth-emea9.bullhornstaffing.com/oauth"},
    which yields "emea9".

    Raises:
        BullhornApiError: If loginInfo answers an error status
        AuthError: If the answer carries no usable oauthUrl
    """
    async with _http_session(http) as session:
        async with session.request("GET", url, params={"username": username}) as response:
            if not 200 <= response.status < 300:
                raise classify_api_error(response.status, sanitize_url(url))
            data = await response.json(content_type=None)

    try:
        cluster = LoginInfoResponse.model_validate(data).cluster
    except (ValidationError, ValueError) as e:
        raise AuthError(f"Cannot discover cluster for {username}", cause=e) from e

    log_with_context(logger, logging.INFO, "Discovered Bullhorn cluster", cluster=cluster)
    return cluster


async def universal_login(
    username: str,
    password: str,
    http: Optional[aiohttp.ClientSession] = None,
    url: str = UNIVERSAL_LOGIN_URL,
) -> Session:
    """
    Acquire a REST session from username and password alone.

    The service answers several named sessions; the one named "rest" carries
    the REST endpoint and BhRestToken. The session has no known expiry.

    Raises:
        BullhornApiError: If the service answers an error status
        AuthError: If no rest session with a token is returned
    """
    form = aiohttp.FormData()
    form.add_field("username", username)
    form.add_field("password", password)

    async with _http_session(http) as session:
        async with session.request("POST", url, data=form) as response:
            if not 200 <= response.status < 300:
                raise classify_api_error(response.status, sanitize_url(url))
            data = await response.json(content_type=None)

    try:
        rest = UniversalLoginResponse.model_validate(data).find_session(REST_SESSION_NAME)
    except ValidationError as e:
        raise AuthError("Unexpected universal login response", cause=e) from e

    if rest is None or not rest.token:
        raise AuthError("Universal login returned no rest session")

    log_with_context(logger, logging.INFO, "Universal login succeeded", api_url=rest.endpoint)
    return Session(base_url=rest.endpoint, session_token=rest.token)
