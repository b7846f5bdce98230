"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from lastfriends.clients import PendingAuthorizationEncoder, SpotifyOAuthClient
from lastfriends.core.config import get_settings
from lastfriends.core.errors import ConfigurationError
from lastfriends.services import (
    CredentialVault,
    MemorySessionBackend,
    RedisSessionBackend,
    RequestGate,
    SessionBridge,
    SessionStore,
    create_redis_client,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_pending_auth_encoder() -> PendingAuthorizationEncoder:
    """Provide the signer for the pending authorization cookie."""
    settings = _settings()
    secret = settings.state_signing_secret()
    if secret is None:
        raise ConfigurationError("No secret available to sign the OAuth state cookie.")
    return PendingAuthorizationEncoder(
        secret_key=secret[1],
        ttl_seconds=settings.session.pending_auth_ttl_seconds,
    )


@lru_cache()
def get_spotify_oauth_client() -> SpotifyOAuthClient:
    """Create a singleton Spotify OAuth client."""
    settings = _settings()
    return SpotifyOAuthClient(
        settings.spotify, timeout=settings.session.provider_timeout_seconds
    )


@lru_cache()
def get_credential_vault() -> CredentialVault:
    """Provide symmetric encryption helper for token storage."""
    return CredentialVault.from_settings(_settings().security)


@lru_cache()
def get_session_store() -> SessionStore:
    """Provide the session store, backed by Redis when ``REDIS_URL`` is set."""
    settings = _settings()
    shared = None
    if settings.redis.url:
        shared = RedisSessionBackend(
            create_redis_client(
                settings.redis.url,
                socket_timeout=settings.redis.socket_timeout_seconds,
            ),
            key_prefix=settings.redis.key_prefix,
        )
    return SessionStore(local=MemorySessionBackend(), shared=shared)


@lru_cache()
def get_session_bridge() -> SessionBridge:
    """Provide the session bridge wired to the shared store and vault."""
    return SessionBridge(
        store=get_session_store(),
        vault=get_credential_vault(),
        oauth_client=get_spotify_oauth_client(),
        session_settings=_settings().session,
    )


def get_request_gate() -> RequestGate:
    """Build a request gate over the session bridge."""
    return RequestGate(get_session_bridge(), _settings().session)


__all__ = [
    "get_credential_vault",
    "get_pending_auth_encoder",
    "get_request_gate",
    "get_session_bridge",
    "get_session_store",
    "get_spotify_oauth_client",
]
