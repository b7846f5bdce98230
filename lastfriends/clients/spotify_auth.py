"""
Spotify OAuth utilities.

These helpers manage the Authorization Code with PKCE login flow, the token
refresh grant and the profile lookup used to snapshot a user's identity.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from lastfriends.core.config import SpotifySettings
from lastfriends.core.errors import (
    InvalidAuthStateError,
    ProfileFetchError,
    RefreshFailedError,
    TokenExchangeError,
)
from lastfriends.models.session import PendingAuthorization
from lastfriends.schemas.auth import ProviderIdentity, TokenSet


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> Tuple[str, str]:
    """Return a ``(code_verifier, code_challenge)`` pair using the S256 method."""
    verifier = _b64url(secrets.token_bytes(32))
    challenge = _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
    return verifier, challenge


class PendingAuthorizationEncoder:
    """Sign and verify the pending authorization carried across the redirect."""

    def __init__(self, secret_key: str, *, ttl_seconds: int = 600) -> None:
        self._secret_key = secret_key.encode("utf-8")
        self._ttl_ms = ttl_seconds * 1000

    def encode(self, pending: PendingAuthorization) -> str:
        serialized = json.dumps(
            pending.model_dump(), separators=(",", ":"), sort_keys=True
        ).encode("utf-8")
        signature = hmac.new(self._secret_key, serialized, hashlib.sha256).digest()
        return _b64url(signature + serialized)

    def decode(self, token: str, *, now_ms: Optional[int] = None) -> PendingAuthorization:
        try:
            padded = token + "=" * (-len(token) % 4)
            decoded = base64.urlsafe_b64decode(padded.encode("ascii"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidAuthStateError() from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, hashlib.sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidAuthStateError()

        try:
            pending = PendingAuthorization.model_validate_json(serialized)
        except ValidationError as exc:
            raise InvalidAuthStateError() from exc

        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        if now_ms - pending.created_at > self._ttl_ms:
            raise InvalidAuthStateError("The login request expired. Please start again.")
        return pending


class SpotifyOAuthClient:
    """Build Spotify authorization URLs and talk to the accounts service."""

    AUTH_BASE_URL = "https://accounts.spotify.com/authorize"
    TOKEN_URL = "https://accounts.spotify.com/api/token"
    PROFILE_URL = "https://api.spotify.com/v1/me"

    def __init__(
        self,
        spotify_settings: SpotifySettings,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._spotify = spotify_settings
        self._timeout = timeout
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    @property
    def redirect_uri(self) -> str:
        return str(self._spotify.redirect_uri)

    def build_authorization_url(
        self, state: str, code_challenge: str, redirect_uri: Optional[str] = None
    ) -> str:
        """Construct the Spotify consent URL."""
        params = {
            "client_id": self._spotify.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri or self.redirect_uri,
            "scope": " ".join(self._spotify.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "show_dialog": "false",
        }
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    def _token_request(self, payload: Dict[str, str]) -> Tuple[Dict[str, str], Dict[str, str]]:
        headers: Dict[str, str] = {}
        if self._spotify.client_secret:
            credentials = f"{self._spotify.client_id}:{self._spotify.client_secret}"
            encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
        else:
            payload = {**payload, "client_id": self._spotify.client_id}
        return payload, headers

    async def _post_token(self, payload: Dict[str, str]) -> Dict[str, Any]:
        data, headers = self._token_request(payload)
        async with self._http() as client:
            response = await client.post(self.TOKEN_URL, data=data, headers=headers)
        if response.status_code != httpx.codes.OK:
            raise TokenExchangeError(f"{response.status_code} {response.text}")
        return response.json()

    @staticmethod
    def _token_set(payload: Dict[str, Any]) -> TokenSet:
        access_token = payload.get("access_token")
        if not access_token:
            raise TokenExchangeError("Token payload returned from Spotify has no access token.")
        expires_in = payload.get("expires_in")
        return TokenSet(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_in=int(expires_in) if expires_in else None,
            scope=payload.get("scope"),
        )

    async def exchange_authorization_code(
        self, code: str, code_verifier: str, redirect_uri: Optional[str] = None
    ) -> TokenSet:
        """Exchange an authorization code and its PKCE verifier for tokens."""
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or self.redirect_uri,
            "code_verifier": code_verifier,
        }
        try:
            return self._token_set(await self._post_token(payload))
        except (httpx.HTTPError, ValueError) as exc:
            raise TokenExchangeError(str(exc)) from exc

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        """Refresh the access token; a missing ``refresh_token`` means reuse the old one."""
        payload = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        try:
            return self._token_set(await self._post_token(payload))
        except (TokenExchangeError, httpx.HTTPError, ValueError) as exc:
            raise RefreshFailedError(str(exc)) from exc

    async def fetch_profile(self, access_token: str) -> ProviderIdentity:
        """Return the profile snapshot for the owner of ``access_token``."""
        try:
            async with self._http() as client:
                response = await client.get(
                    self.PROFILE_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as exc:
            raise ProfileFetchError(str(exc)) from exc
        if response.status_code != httpx.codes.OK:
            raise ProfileFetchError(f"Profile lookup failed with {response.status_code}.")

        try:
            profile = response.json()
        except ValueError as exc:
            raise ProfileFetchError("Profile response was not valid JSON.") from exc
        images = profile.get("images") or []
        return ProviderIdentity(
            id=profile.get("id"),
            display_name=profile.get("display_name"),
            email=profile.get("email"),
            avatar_url=images[0].get("url") if images else None,
            country=profile.get("country"),
            provider="spotify",
        )


__all__ = [
    "PendingAuthorizationEncoder",
    "SpotifyOAuthClient",
    "generate_pkce_pair",
]
