"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the session services and
the operator scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class SpotifySettings(BaseSettings):
    """Configuration required for the Spotify accounts and Web API."""

    model_config = SettingsConfigDict(populate_by_name=True)

    client_id: str = Field(..., alias="SPOTIFY_CLIENT_ID")
    client_secret: Optional[str] = Field(
        None,
        alias="SPOTIFY_CLIENT_SECRET",
        description=(
            "Confidential client secret. When omitted the app acts as a public "
            "PKCE client."
        ),
    )
    redirect_uri: AnyHttpUrl = Field(..., alias="SPOTIFY_REDIRECT_URI")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "user-read-private",
            "user-read-email",
            "user-top-read",
            "user-library-read",
            "playlist-read-private",
        ),
        alias="SPOTIFY_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True)

    auth_encryption_key: Optional[str] = Field(
        None,
        alias="AUTH_ENCRYPTION_KEY",
        description="64-character hex string (32 bytes) used to encrypt stored tokens.",
    )
    state_secret: Optional[str] = Field(
        None,
        alias="AUTH_STATE_SECRET",
        description="Secret used to sign the pending authorization cookie.",
    )


class SessionSettings(BaseSettings):
    """Session lifetime and cookie configuration."""

    model_config = SettingsConfigDict(populate_by_name=True)

    ttl_seconds: int = Field(30 * 24 * 60 * 60, alias="SESSION_TTL_SECONDS")
    refresh_margin_seconds: int = Field(300, alias="SESSION_REFRESH_MARGIN_SECONDS")
    default_token_lifetime_seconds: int = Field(
        3600, alias="SESSION_DEFAULT_TOKEN_LIFETIME_SECONDS"
    )
    pending_auth_ttl_seconds: int = Field(600, alias="OAUTH_STATE_TTL")
    cookie_name: str = Field("session_token", alias="SESSION_COOKIE_NAME")
    debug_cookie_name: str = Field(
        "session_token_debug", alias="SESSION_DEBUG_COOKIE_NAME"
    )
    pending_cookie_name: str = Field(
        "spotify_auth_pending", alias="OAUTH_PENDING_COOKIE_NAME"
    )
    cookie_domain: Optional[str] = Field(None, alias="AUTH_COOKIE_DOMAIN")
    cookie_secure: bool = Field(False, alias="SESSION_COOKIE_SECURE")
    sweep_interval_seconds: int = Field(300, alias="SESSION_SWEEP_INTERVAL_SECONDS")
    provider_timeout_seconds: float = Field(10.0, alias="PROVIDER_TIMEOUT_SECONDS")


class RedisSettings(BaseSettings):
    """Shared session store configuration."""

    model_config = SettingsConfigDict(populate_by_name=True)

    url: Optional[str] = Field(
        None,
        alias="REDIS_URL",
        description="When omitted sessions live in the process-local store only.",
    )
    key_prefix: str = Field("session:", alias="REDIS_SESSION_PREFIX")
    socket_timeout_seconds: float = Field(5.0, alias="REDIS_SOCKET_TIMEOUT")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def state_signing_secret(self) -> Optional[tuple[str, str]]:
        """Return ``(env_name, value)`` of the secret that signs the pending login cookie."""
        candidates = (
            ("AUTH_STATE_SECRET", self.security.state_secret),
            ("SPOTIFY_CLIENT_SECRET", self.spotify.client_secret),
            ("AUTH_ENCRYPTION_KEY", self.security.auth_encryption_key),
        )
        for name, value in candidates:
            if value:
                return name, value
        return None


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "RedisSettings",
    "SecuritySettings",
    "SessionSettings",
    "SpotifySettings",
    "get_settings",
]
