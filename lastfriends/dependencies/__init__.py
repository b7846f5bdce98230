"""Expose dependency helpers for FastAPI routers."""

from .auth import OptionalAuth, RequiredAuth, optional_auth, require_auth
from .clients import (
    get_credential_vault,
    get_pending_auth_encoder,
    get_request_gate,
    get_session_bridge,
    get_session_store,
    get_spotify_oauth_client,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "OptionalAuth",
    "RequiredAuth",
    "SettingsDependency",
    "get_app_settings",
    "get_credential_vault",
    "get_pending_auth_encoder",
    "get_request_gate",
    "get_session_bridge",
    "get_session_store",
    "get_spotify_oauth_client",
    "optional_auth",
    "require_auth",
]
