"""Per-request identity resolution with required and optional policies."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from lastfriends.core.config import SessionSettings
from lastfriends.core.errors import InvalidSessionError, NoSessionTokenError
from lastfriends.core.logging import redact
from lastfriends.schemas.auth import PublicIdentity
from lastfriends.services.session_bridge import SessionBridge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """What a handler learns about its caller. Holds no ciphertext."""

    identity: PublicIdentity
    access_token: str = field(repr=False)
    session_token: str = field(repr=False)
    provider: str = "spotify"
    token_expires_at: Optional[int] = None
    session_created_at: Optional[int] = None
    last_accessed_at: Optional[int] = None
    warning: Optional[str] = None


class RequestGate:
    """Resolve the caller of a request through the session bridge."""

    def __init__(self, bridge: SessionBridge, session_settings: SessionSettings) -> None:
        self._bridge = bridge
        self._settings = session_settings

    def extract_token(self, cookies: Mapping[str, str]) -> Optional[str]:
        """Return the session token, letting the debug cookie override the regular one."""
        return cookies.get(self._settings.debug_cookie_name) or cookies.get(
            self._settings.cookie_name
        )

    async def _resolve(self, token: str) -> Optional[AuthContext]:
        resolved = await self._bridge.resolve_session(token)
        if resolved is None:
            return None
        if resolved.warning:
            logger.warning(
                "Serving session %s with a stale access token (%s)",
                redact(token),
                resolved.warning,
            )
        record = resolved.record
        return AuthContext(
            identity=resolved.identity,
            access_token=resolved.access_token,
            session_token=token,
            provider=record.provider,
            token_expires_at=record.access_token_expires_at,
            session_created_at=record.created_at,
            last_accessed_at=record.last_accessed_at,
            warning=resolved.warning,
        )

    async def require(self, cookies: Mapping[str, str]) -> AuthContext:
        """Resolve the caller or raise an :class:`AuthError`."""
        token = self.extract_token(cookies)
        if not token:
            raise NoSessionTokenError()
        context = await self._resolve(token)
        if context is None:
            raise InvalidSessionError()
        return context

    async def optional(self, cookies: Mapping[str, str]) -> Optional[AuthContext]:
        """Resolve the caller when possible; never raises."""
        token = self.extract_token(cookies)
        if not token:
            return None
        try:
            return await self._resolve(token)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning(
                "Optional authentication failed for session %s: %s",
                redact(token),
                exc.__class__.__name__,
            )
            return None


__all__ = ["AuthContext", "RequestGate"]
