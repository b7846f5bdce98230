"""
Bridge between provider logins and server-side sessions.

The bridge is the only component that mints or refreshes a
:class:`SessionRecord`. A session outlives its access token: resolution
refreshes the provider token lazily once it comes within the refresh margin
of its deadline, and a session only ends when a refresh is impossible after
the access token has actually expired, or on logout.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

from lastfriends.core.config import SessionSettings
from lastfriends.core.errors import InvalidSessionError, RefreshFailedError, VaultError
from lastfriends.core.logging import redact
from lastfriends.models.session import SessionRecord
from lastfriends.schemas.auth import ProviderIdentity, PublicIdentity, TokenSet
from lastfriends.services.credential_vault import CredentialVault, generate_session_token
from lastfriends.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NO_SESSION = "no_session"
    ACTIVE = "active"
    REFRESH_DUE = "refresh_due"
    REFRESHED = "refreshed"
    STALE_VALID = "stale_valid"
    EXPIRED = "expired"


def classify(
    record: Optional[SessionRecord], now_ms: int, margin_ms: int
) -> SessionState:
    """Place a stored record in the lazy state machine before any refresh."""
    if record is None:
        return SessionState.NO_SESSION
    if record.access_token_expires_at - now_ms > margin_ms:
        return SessionState.ACTIVE
    return SessionState.REFRESH_DUE


@dataclass
class ResolvedSession:
    """A live session together with its decrypted access token."""

    token: str = field(repr=False)
    record: SessionRecord
    access_token: str = field(repr=False)
    state: SessionState
    warning: Optional[str] = None

    @property
    def identity(self) -> PublicIdentity:
        return PublicIdentity(
            id=self.record.subject_id,
            email=self.record.email,
            name=self.record.display_name,
            image=self.record.avatar_url,
        )


class SessionBridge:
    """Create, resolve and delete vault-backed sessions."""

    def __init__(
        self,
        store: SessionStore,
        vault: CredentialVault,
        oauth_client,
        session_settings: SessionSettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._vault = vault
        self._oauth = oauth_client
        self._settings = session_settings
        self._clock = clock
        self._refreshes: Dict[str, asyncio.Future] = {}

    @property
    def _margin_ms(self) -> int:
        return self._settings.refresh_margin_seconds * 1000

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _expires_at(self, token_set: TokenSet, now_ms: int) -> int:
        lifetime = token_set.expires_in or self._settings.default_token_lifetime_seconds
        return now_ms + lifetime * 1000

    def _decrypt(self, ciphertext: str, token: str) -> str:
        try:
            return self._vault.decrypt(ciphertext)
        except VaultError as exc:
            logger.warning(
                "Session %s holds undecryptable token material: %s",
                redact(token),
                exc.__class__.__name__,
            )
            raise InvalidSessionError() from exc

    async def create_session(self, identity: ProviderIdentity, token_set: TokenSet) -> str:
        """Persist a new session for ``identity`` and return its opaque token."""
        subject_id = identity.id or identity.email
        if not subject_id:
            raise ValueError("Provider identity has neither an id nor an email.")

        now_ms = self._now_ms()
        refresh_ciphertext = (
            self._vault.encrypt(token_set.refresh_token) if token_set.refresh_token else None
        )
        record = SessionRecord(
            subject_id=subject_id,
            display_name=identity.display_name,
            email=identity.email,
            avatar_url=identity.avatar_url,
            access_token_ciphertext=self._vault.encrypt(token_set.access_token),
            refresh_token_ciphertext=refresh_ciphertext,
            access_token_expires_at=self._expires_at(token_set, now_ms),
            provider=identity.provider,
            created_at=now_ms,
            last_accessed_at=now_ms,
        )
        token = generate_session_token()
        await self._store.put(token, record, self._settings.ttl_seconds)
        logger.info("Created session %s for subject %s", redact(token), subject_id)
        return token

    async def resolve_session(self, token: str) -> Optional[ResolvedSession]:
        """Return a live session for ``token``, refreshing its access token if due.

        Returns ``None`` when the token is unknown or the session has expired
        beyond recovery. Raises :class:`InvalidSessionError` when the stored
        token material cannot be decrypted.
        """
        if not token:
            return None
        record = await self._store.get(token)
        state = classify(record, self._now_ms(), self._margin_ms)
        if state is SessionState.NO_SESSION:
            return None
        if state is SessionState.ACTIVE:
            return await self._touch(token, record, SessionState.ACTIVE)
        return await self._refresh_shared(token)

    async def delete_session(self, token: str) -> None:
        """Forget a session; unknown tokens are ignored."""
        if not token:
            return
        await self._store.delete(token)
        logger.info("Deleted session %s", redact(token))

    async def _touch(
        self,
        token: str,
        record: SessionRecord,
        state: SessionState,
        warning: Optional[str] = None,
    ) -> Optional[ResolvedSession]:
        current = await self._store.get(token)
        if current is None:
            return None
        if current.access_token_ciphertext != record.access_token_ciphertext:
            # Refreshed elsewhere since ``record`` was read; serve the stored tokens.
            record, state, warning = current, SessionState.ACTIVE, None

        access_token = self._decrypt(record.access_token_ciphertext, token)
        touched = current.model_copy(update={"last_accessed_at": self._now_ms()})
        await self._store.put(token, touched, self._settings.ttl_seconds)
        return ResolvedSession(
            token=token,
            record=touched,
            access_token=access_token,
            state=state,
            warning=warning,
        )

    async def _expire(self, token: str) -> None:
        await self._store.delete(token)
        logger.info("Session %s expired and was removed", redact(token))

    async def _refresh_shared(self, token: str) -> Optional[ResolvedSession]:
        """Join the in-flight refresh for ``token``, starting one if none is running."""
        task = self._refreshes.get(token)
        if task is None:
            task = asyncio.ensure_future(self._refresh_once(token))
            self._refreshes[token] = task
            task.add_done_callback(functools.partial(self._forget_refresh, token))
        # A cancelled caller must not cancel the refresh other callers wait on.
        return await asyncio.shield(task)

    def _forget_refresh(self, token: str, task: asyncio.Future) -> None:
        if self._refreshes.get(token) is task:
            del self._refreshes[token]

    async def _refresh_once(self, token: str) -> Optional[ResolvedSession]:
        record = await self._store.get(token)
        now_ms = self._now_ms()
        state = classify(record, now_ms, self._margin_ms)
        if state is SessionState.NO_SESSION:
            return None
        if state is SessionState.ACTIVE:
            return await self._touch(token, record, SessionState.ACTIVE)
        return await self._refresh(token, record, now_ms)

    async def _refresh(
        self, token: str, record: SessionRecord, now_ms: int
    ) -> Optional[ResolvedSession]:
        expired = record.access_token_expires_at <= now_ms

        if record.refresh_token_ciphertext is None:
            if expired:
                await self._expire(token)
                return None
            return await self._touch(
                token, record, SessionState.STALE_VALID, warning="refresh_unavailable"
            )

        refresh_token = self._decrypt(record.refresh_token_ciphertext, token)
        try:
            token_set: TokenSet = await asyncio.wait_for(
                self._oauth.refresh_access_token(refresh_token),
                timeout=self._settings.provider_timeout_seconds,
            )
        except (RefreshFailedError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Token refresh failed for session %s (%s)",
                redact(token),
                exc.__class__.__name__,
            )
            if expired:
                await self._expire(token)
                return None
            return await self._touch(
                token, record, SessionState.STALE_VALID, warning="refresh_failed"
            )

        refreshed_at = self._now_ms()
        refreshed = record.model_copy(
            update={
                "access_token_ciphertext": self._vault.encrypt(token_set.access_token),
                "refresh_token_ciphertext": self._vault.encrypt(
                    token_set.refresh_token or refresh_token
                ),
                "access_token_expires_at": self._expires_at(token_set, refreshed_at),
                "last_accessed_at": refreshed_at,
            }
        )
        await self._store.put(token, refreshed, self._settings.ttl_seconds)
        logger.info("Refreshed access token for session %s", redact(token))
        return ResolvedSession(
            token=token,
            record=refreshed,
            access_token=token_set.access_token,
            state=SessionState.REFRESHED,
        )


__all__ = ["ResolvedSession", "SessionBridge", "SessionState", "classify"]
