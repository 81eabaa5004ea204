"""
Client configuration from config.yaml and environment variables.

Configuration priority (highest to lowest):
1. Environment variables
2. config.yaml file (under 'bullhorn:' key)
3. Dataclass defaults
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from bullhorn_auth.common.exceptions import ConfigurationError
from bullhorn_auth.schemas import DEFAULT_CLUSTER, Credentials

# Default config path: config.yaml in the working directory
DEFAULT_CONFIG_PATH = Path("config.yaml")

DEFAULT_AUTH_URL_TEMPLATE = "https://auth-{cluster}.bullhornstaffing.com/oauth"
DEFAULT_REST_URL_TEMPLATE = "https://rest-{cluster}.bullhornstaffing.com/rest-services"
DEFAULT_CONSENT_URL = "https://auth.bullhornstaffing.com/oauth/authorize"

# Session lifetime requested from /rest-services/login, in minutes (2 days)
DEFAULT_SESSION_TTL_MINUTES = 2880
# How long CachingSessionClient serves a session before re-acquiring
DEFAULT_CACHE_TTL_MINUTES = 30
# ManagedSessionClient skips refresh while the session outlives now + margin
DEFAULT_REFRESH_MARGIN_HOURS = 6
# Cron step of the managed refresh loop (*/30 * * * *)
DEFAULT_REFRESH_EVERY_MINUTES = 30


@dataclass
class BullhornConfig:
    """Bullhorn connection and session lifecycle configuration.

    Load with BullhornConfig.load_config() (yaml + env) or
    BullhornConfig.from_env() (env only).
    """

    # Credentials
    username: str
    password: str
    client_id: str
    client_secret: str
    cluster: str = DEFAULT_CLUSTER

    # Session lifecycle
    session_ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES
    cache_ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES
    refresh_margin_hours: float = DEFAULT_REFRESH_MARGIN_HOURS
    refresh_every_minutes: int = DEFAULT_REFRESH_EVERY_MINUTES

    # HTTP transport (None = no client-side timeout)
    request_timeout_seconds: Optional[float] = None

    # Endpoints
    auth_url_template: str = DEFAULT_AUTH_URL_TEMPLATE
    rest_url_template: str = DEFAULT_REST_URL_TEMPLATE
    consent_url: str = DEFAULT_CONSENT_URL

    def __post_init__(self) -> None:
        if self.session_ttl_minutes <= 0:
            raise ConfigurationError("session_ttl_minutes must be positive")
        if self.cache_ttl_minutes <= 0:
            raise ConfigurationError("cache_ttl_minutes must be positive")
        if self.refresh_margin_hours < 0:
            raise ConfigurationError("refresh_margin_hours cannot be negative")
        if not 1 <= self.refresh_every_minutes <= 60:
            raise ConfigurationError("refresh_every_minutes must be between 1 and 60")

    def credentials(self) -> Credentials:
        """Build the immutable Credentials model for a client."""
        return Credentials(
            username=self.username,
            password=self.password,
            client_id=self.client_id,
            client_secret=self.client_secret,
            cluster=self.cluster,
        )

    @classmethod
    def from_env(cls) -> "BullhornConfig":
        """Load configuration from environment variables only.

        Required environment variables:
            BULLHORN_USERNAME, BULLHORN_PASSWORD,
            BULLHORN_CLIENT_ID, BULLHORN_CLIENT_SECRET

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        return cls._build({})

    @classmethod
    def load_config(cls, config_path: Optional[Path] = None) -> "BullhornConfig":
        """Load configuration from config.yaml and environment variables.

        Optional env vars (all have defaults):
            BULLHORN_CLUSTER: Data center (default: emea)
            BULLHORN_SESSION_TTL_MINUTES: REST session ttl (default: 2880)
            BULLHORN_CACHE_TTL_MINUTES: Cache lifetime (default: 30)
            BULLHORN_REFRESH_MARGIN_HOURS: Proactive refresh margin (default: 6)
            BULLHORN_REFRESH_EVERY_MINUTES: Refresh loop cron step (default: 30)
            BULLHORN_REQUEST_TIMEOUT_SECONDS: HTTP timeout (default: none)

        Raises:
            ConfigurationError: If required values are missing or the file is invalid
        """
        config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

        file_data: Dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    yaml_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Invalid YAML in {config_path}", cause=e
                ) from e
            if not isinstance(yaml_data, dict):
                raise ConfigurationError(f"Expected a mapping in {config_path}")
            file_data = yaml_data.get("bullhorn", {}) or {}

        return cls._build(file_data)

    @classmethod
    def _build(cls, file_data: Dict[str, Any]) -> "BullhornConfig":
        def setting(key: str, default: Any = None) -> Any:
            return os.getenv(f"BULLHORN_{key.upper()}", file_data.get(key, default))

        missing = [
            f"BULLHORN_{key.upper()}"
            for key in ("username", "password", "client_id", "client_secret")
            if not setting(key)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )

        timeout = setting("request_timeout_seconds")

        try:
            return cls(
                username=str(setting("username")),
                password=str(setting("password")),
                client_id=str(setting("client_id")),
                client_secret=str(setting("client_secret")),
                cluster=str(setting("cluster", DEFAULT_CLUSTER)),
                session_ttl_minutes=int(
                    setting("session_ttl_minutes", DEFAULT_SESSION_TTL_MINUTES)
                ),
                cache_ttl_minutes=int(
                    setting("cache_ttl_minutes", DEFAULT_CACHE_TTL_MINUTES)
                ),
                refresh_margin_hours=float(
                    setting("refresh_margin_hours", DEFAULT_REFRESH_MARGIN_HOURS)
                ),
                refresh_every_minutes=int(
                    setting("refresh_every_minutes", DEFAULT_REFRESH_EVERY_MINUTES)
                ),
                request_timeout_seconds=float(timeout) if timeout not in (None, "") else None,
                auth_url_template=str(
                    setting("auth_url_template", DEFAULT_AUTH_URL_TEMPLATE)
                ),
                rest_url_template=str(
                    setting("rest_url_template", DEFAULT_REST_URL_TEMPLATE)
                ),
                consent_url=str(setting("consent_url", DEFAULT_CONSENT_URL)),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}", cause=e) from e
