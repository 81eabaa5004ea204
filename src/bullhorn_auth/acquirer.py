"""
Bullhorn session acquisition.

Performs the multi-step exchange against the Bullhorn authority:

1. POST credentials to /oauth/authorize (redirects disabled) and read the
   authorization code from the 302 Location header. A 307 means the user
   belongs to another cluster; the same form is re-posted once to the
   Location it names.
2. Exchange the code for an access token at /oauth/token.
3. Exchange the access token for a REST session (restUrl + BhRestToken) at
   /rest-services/login.
4. Optionally probe /ping for the session expiry.

Any failure along the way surfaces as AuthError with a hint pointing at the
manual consent URL. Nothing is retried here except the cluster correction.
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse

import aiohttp

from bullhorn_auth.common.exceptions import AuthError
from bullhorn_auth.common.security import sanitize_error_message, sanitize_url
from bullhorn_auth.config import (
    DEFAULT_AUTH_URL_TEMPLATE,
    DEFAULT_CONSENT_URL,
    DEFAULT_REST_URL_TEMPLATE,
    DEFAULT_SESSION_TTL_MINUTES,
)
from bullhorn_auth.http import HttpComponent
from bullhorn_auth.metrics import record_acquisition
from bullhorn_auth.probe import SessionExpiryProbe
from bullhorn_auth.schemas import (
    Credentials,
    RestLoginResponse,
    Session,
    TokenResponse,
)

# Authorize endpoint answers
CODE_REDIRECT_STATUS = 302
CLUSTER_REDIRECT_STATUS = 307


class TokenAcquirer(HttpComponent):
    """
    Acquires Bullhorn REST sessions from credentials.

    Usage:
        async with TokenAcquirer() as acquirer:
            session = await acquirer.acquire(credentials)

        # Full acquisition, expiry included (probe failure is fatal)
        session = await acquirer.acquire(credentials, probe=SessionExpiryProbe(http))

    Configuration:
        http: Shared aiohttp session (owned when omitted)
        auth_url_template: OAuth base URL with a {cluster} placeholder
        rest_url_template: REST services base URL with a {cluster} placeholder
        consent_url: Authorize URL shown in failure hints
        timeout_seconds: Per-request timeout (default: transport default)
    """

    log_component = "acquirer"

    def __init__(
        self,
        http: Optional[aiohttp.ClientSession] = None,
        auth_url_template: str = DEFAULT_AUTH_URL_TEMPLATE,
        rest_url_template: str = DEFAULT_REST_URL_TEMPLATE,
        consent_url: str = DEFAULT_CONSENT_URL,
        timeout_seconds: Optional[float] = None,
    ):
        self.auth_url_template = auth_url_template
        self.rest_url_template = rest_url_template
        self.consent_url = consent_url
        super().__init__(http=http, timeout_seconds=timeout_seconds)

    def auth_url(self, cluster: str) -> str:
        return self.auth_url_template.format(cluster=cluster).rstrip("/")

    def rest_url(self, cluster: str) -> str:
        return self.rest_url_template.format(cluster=cluster).rstrip("/")

    def consent_hint(self, client_id: str) -> str:
        """Operator hint for the one-time terms acceptance a headless login cannot give."""
        query = urlencode({"client_id": client_id, "response_type": "code"})
        return (
            "check credentials and try browsing to: "
            f"{self.consent_url}?{query}&username=[username]&password=[password]&action=Login "
            "and accept the terms and conditions"
        )

    async def acquire(
        self,
        credentials: Credentials,
        ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES,
        probe: Optional[SessionExpiryProbe] = None,
    ) -> Session:
        """
        Run the full exchange and return a new session.

        Args:
            credentials: Login material
            ttl_minutes: Session lifetime requested from /rest-services/login
            probe: When given, /ping is called and the session carries expires_at;
                a probe failure then fails the whole acquisition

        Returns:
            Session with base_url and session_token (and expires_at when probed)

        Raises:
            AuthError: On any failure, with the consent hint attached
        """
        started = time.perf_counter()
        step = "authorize"
        try:
            code = await self.get_authorization_code(credentials)
            step = "token"
            access_token = await self.get_access_token(code, credentials)
            step = "login"
            session = await self.get_rest_session(
                access_token, credentials.cluster, ttl_minutes
            )
            if probe is not None:
                step = "ping"
                session = session.with_expiry(await probe.probe_expiry(session))
        except Exception as e:
            duration = time.perf_counter() - started
            record_acquisition(False, duration)
            error = AuthError(
                f"Failed to get Bullhorn session ({step} step): "
                f"{sanitize_error_message(str(e))}",
                context={"step": step, "cluster": credentials.cluster},
                hint=self.consent_hint(credentials.client_id),
            )
            self._log(
                logging.WARNING,
                "Session acquisition failed",
                cluster=credentials.cluster,
                step=step,
                error_category=error.category.value,
                error_message=sanitize_error_message(str(e)),
                duration_ms=round(duration * 1000),
            )
            raise error from e

        duration = time.perf_counter() - started
        record_acquisition(True, duration)
        self._log(
            logging.INFO,
            "Acquired Bullhorn session",
            cluster=credentials.cluster,
            api_url=session.base_url,
            session_expires=session.expires_at.isoformat() if session.expires_at else None,
            duration_ms=round(duration * 1000),
        )
        return session

    # =========================================================================
    # Exchange steps
    # =========================================================================

    async def get_authorization_code(self, credentials: Credentials) -> str:
        """
        Submit the login form and extract the authorization code.

        Raises:
            AuthError: If the final response is not a redirect carrying a code
        """
        url = f"{self.auth_url(credentials.cluster)}/authorize"
        params = {"client_id": credentials.client_id, "response_type": "code"}
        form = {
            "username": credentials.username,
            "password": credentials.password,
            "action": "Login",
        }

        status, location = await self._post_without_redirect(url, form, params)

        if status == CLUSTER_REDIRECT_STATUS and location:
            self._log(
                logging.INFO,
                "Using invalid cluster, following redirect",
                cluster=credentials.cluster,
                url=location,
            )
            status, location = await self._post_without_redirect(location, form)

        if status != CODE_REDIRECT_STATUS or not location:
            raise AuthError(
                f"no authorization code: authorize endpoint answered {status}",
                context={"http_status": status},
            )

        code = parse_qs(urlparse(location).query).get("code", [""])[0]
        if not code:
            raise AuthError(
                "no authorization code",
                context={"location": sanitize_url(location)},
            )
        return code

    async def get_access_token(self, code: str, credentials: Credentials) -> str:
        """Exchange an authorization code for an OAuth access token."""
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
        }
        data = await self._read_json(
            "POST", f"{self.auth_url(credentials.cluster)}/token", data=form
        )
        return TokenResponse.model_validate(data).access_token

    async def get_rest_session(
        self, access_token: str, cluster: str, ttl_minutes: int
    ) -> Session:
        """Exchange an access token for a REST session."""
        params = {"access_token": access_token, "ttl": str(ttl_minutes), "version": "*"}
        data = await self._read_json(
            "GET", f"{self.rest_url(cluster)}/login", params=params
        )
        return RestLoginResponse.model_validate(data).to_session()

    # =========================================================================
    # HTTP helpers
    # =========================================================================

    async def _post_without_redirect(
        self,
        url: str,
        form: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Optional[str]]:
        http = await self._ensure_session()
        async with http.request(
            "POST",
            url,
            params=params,
            data=form,
            allow_redirects=False,
            **self._request_kwargs(),
        ) as response:
            return response.status, response.headers.get("Location")

    async def _read_json(self, method: str, url: str, **kwargs: Any) -> Any:
        http = await self._ensure_session()
        async with http.request(method, url, **kwargs, **self._request_kwargs()) as response:
            if response.status != 200:
                raise AuthError(
                    f"{urlparse(url).path} answered {response.status}",
                    context={"http_status": response.status},
                )
            return await response.json(content_type=None)
