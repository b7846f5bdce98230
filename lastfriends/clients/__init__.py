"""Expose constructed client wrappers."""

from .spotify_auth import (
    PendingAuthorizationEncoder,
    SpotifyOAuthClient,
    generate_pkce_pair,
)

__all__ = [
    "PendingAuthorizationEncoder",
    "SpotifyOAuthClient",
    "generate_pkce_pair",
]
