"""
Data model and Bullhorn wire schemas.

Contains Pydantic models for the credentials a client is built with, the
session it acquires, the cache entry that wraps it, the generic request
description accepted by the authenticated request capability, and the few
response shapes read from the Bullhorn authority.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CLUSTER = "emea"


class Credentials(BaseModel):
    """Login material for one Bullhorn API user.

    Immutable for the lifetime of a client. Password and client secret are
    excluded from repr so a logged model never leaks them.

    Example:
        >>> creds = Credentials(
        ...     username="api.user",
        ...     password="secret",
        ...     client_id="abc",
        ...     client_secret="xyz",
        ... )
        >>> creds.cluster
        'emea'
    """

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1, description="Bullhorn username")
    password: str = Field(..., min_length=1, repr=False, description="Bullhorn password")
    client_id: str = Field(..., min_length=1, description="OAuth client ID")
    client_secret: str = Field(
        ..., min_length=1, repr=False, description="OAuth client secret"
    )
    cluster: str = Field(
        default=DEFAULT_CLUSTER,
        min_length=1,
        description="Bullhorn data center, e.g. emea, emea9, west",
    )

    @field_validator("username", "client_id", "cluster")
    @classmethod
    def validate_non_empty_strings(cls, v: str, info) -> str:
        """Ensure identifier fields are not whitespace-only."""
        if not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return v.strip()


class Session(BaseModel):
    """An authenticated REST session.

    base_url and session_token are both required, so a Session never
    carries one without the other. expires_at is populated only when the
    expiry probe ran.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(..., min_length=1, description="Authority-assigned REST endpoint")
    session_token: str = Field(
        ..., min_length=1, repr=False, description="BhRestToken bearer credential"
    )
    expires_at: Optional[datetime] = Field(
        default=None, description="Absolute expiry reported by /ping"
    )

    def with_expiry(self, expires_at: datetime) -> "Session":
        """Return a copy of this session carrying expires_at."""
        return self.model_copy(update={"expires_at": expires_at})

    def expires_after(self, instant: datetime) -> bool:
        """True if the expiry is known and later than instant."""
        return self.expires_at is not None and self.expires_at > instant


class CacheEntry(BaseModel):
    """A cached session and the instant it stops being served."""

    model_config = ConfigDict(frozen=True)

    session: Session
    valid_until: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.valid_until


class RequestSpec(BaseModel):
    """Generic request against the REST base URL.

    Example:
        >>> RequestSpec(method="GET", path="entity/Candidate/123", params={"fields": "id,name"})
    """

    method: str = Field(default="GET", min_length=1)
    path: str = Field(..., description="Path relative to the session base URL")
    params: Dict[str, Any] = Field(default_factory=dict)
    json_body: Optional[Any] = None
    data: Optional[Any] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.upper()


# =============================================================================
# Wire schemas (fields not listed are ignored)
# =============================================================================


class TokenResponse(BaseModel):
    """Body of the /oauth/token exchange."""

    access_token: str = Field(..., min_length=1)
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = Field(default=None, repr=False)


class RestLoginResponse(BaseModel):
    """Body of /rest-services/login."""

    model_config = ConfigDict(populate_by_name=True)

    rest_url: str = Field(..., alias="restUrl", min_length=1)
    bh_rest_token: str = Field(..., alias="BhRestToken", min_length=1, repr=False)

    def to_session(self) -> Session:
        return Session(base_url=self.rest_url, session_token=self.bh_rest_token)


class PingResponse(BaseModel):
    """Body of the /ping liveness call. sessionExpires is epoch milliseconds."""

    model_config = ConfigDict(populate_by_name=True)

    session_expires: float = Field(..., alias="sessionExpires")

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.session_expires / 1000, tz=timezone.utc)


class LoginInfoResponse(BaseModel):
    """Body of /rest-services/loginInfo, used for cluster discovery."""

    model_config = ConfigDict(populate_by_name=True)

    oauth_url: str = Field(..., alias="oauthUrl", min_length=1)
    rest_url: Optional[str] = Field(default=None, alias="restUrl")

    @property
    def cluster(self) -> str:
        """Cluster label from oauthUrl, e.g. https://auth-emea9.bullhornstaffing.com/oauth -> emea9."""
        host = urlparse(self.oauth_url).hostname or ""
        first_label = host.split(".", 1)[0]
        if "-" not in first_label:
            raise ValueError(f"Cannot derive cluster from oauthUrl: {self.oauth_url}")
        return first_label.split("-", 1)[1]


class UniversalSessionValue(BaseModel):
    token: Optional[str] = Field(default=None, repr=False)
    endpoint: str


class UniversalSession(BaseModel):
    name: str
    value: UniversalSessionValue


class UniversalLoginResponse(BaseModel):
    """Body of the universal-login session call (only sessions are read)."""

    sessions: List[UniversalSession] = Field(default_factory=list)

    def find_session(self, name: str) -> Optional[UniversalSessionValue]:
        for session in self.sessions:
            if session.name == name:
                return session.value
        return None
