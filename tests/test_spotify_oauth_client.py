try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import hashlib
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from lastfriends.clients.spotify_auth import (
    PendingAuthorizationEncoder,
    SpotifyOAuthClient,
    generate_pkce_pair,
)
from lastfriends.core.config import SpotifySettings
from lastfriends.core.errors import (
    InvalidAuthStateError,
    ProfileFetchError,
    RefreshFailedError,
    TokenExchangeError,
)
from lastfriends.models.session import PendingAuthorization


def _settings() -> SpotifySettings:
    return SpotifySettings(
        SPOTIFY_CLIENT_ID="client",
        SPOTIFY_CLIENT_SECRET="secret",
        SPOTIFY_REDIRECT_URI="https://example.com/callback",
    )


def _client(handler) -> SpotifyOAuthClient:
    return SpotifyOAuthClient(_settings(), transport=httpx.MockTransport(handler))


def test_pkce_pair_uses_s256() -> None:
    verifier, challenge = generate_pkce_pair()

    expected = base64.urlsafe_b64encode(
        hashlib.sha256(verifier.encode("ascii")).digest()
    ).rstrip(b"=").decode("ascii")
    assert challenge == expected
    assert 43 <= len(verifier) <= 128
    assert "=" not in verifier


def test_authorization_url_carries_pkce_challenge() -> None:
    client = SpotifyOAuthClient(_settings())

    url = client.build_authorization_url(state="abc", code_challenge="xyz")

    parsed = urlparse(url)
    params = parse_qs(parsed.query)
    assert url.startswith(SpotifyOAuthClient.AUTH_BASE_URL)
    assert params["state"] == ["abc"]
    assert params["code_challenge"] == ["xyz"]
    assert params["code_challenge_method"] == ["S256"]
    assert params["redirect_uri"] == ["https://example.com/callback"]
    assert params["response_type"] == ["code"]


@pytest.mark.asyncio
async def test_exchange_sends_verifier_with_basic_auth() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"access_token": "A", "refresh_token": "R", "expires_in": 3600},
        )

    token_set = await _client(handler).exchange_authorization_code("code-1", "verifier-1")

    assert token_set.access_token == "A"
    assert token_set.refresh_token == "R"
    assert token_set.expires_in == 3600
    form = parse_qs(seen[0].content.decode("utf-8"))
    assert form["grant_type"] == ["authorization_code"]
    assert form["code_verifier"] == ["verifier-1"]
    assert "client_id" not in form
    assert seen[0].headers["authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_public_client_sends_client_id_in_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": "B"})

    client = SpotifyOAuthClient(
        _settings().model_copy(update={"client_secret": None}),
        transport=httpx.MockTransport(handler),
    )
    token_set = await client.refresh_access_token("R")

    form = parse_qs(seen[0].content.decode("utf-8"))
    assert form["client_id"] == ["client"]
    assert form["grant_type"] == ["refresh_token"]
    assert "authorization" not in seen[0].headers
    assert token_set.refresh_token is None
    assert token_set.expires_in is None


@pytest.mark.asyncio
async def test_exchange_error_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    with pytest.raises(TokenExchangeError):
        await _client(handler).exchange_authorization_code("code-1", "verifier-1")


@pytest.mark.asyncio
async def test_refresh_rejection_and_timeout_raise_refresh_failed() -> None:
    def rejecting(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    def timing_out(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RefreshFailedError):
        await _client(rejecting).refresh_access_token("R")
    with pytest.raises(RefreshFailedError):
        await _client(timing_out).refresh_access_token("R")


@pytest.mark.asyncio
async def test_fetch_profile_builds_identity_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer A"
        return httpx.Response(
            200,
            json={
                "id": "spotify-user",
                "display_name": "Listener",
                "email": "listener@example.com",
                "country": "NL",
                "images": [{"url": "https://img.example.com/a.png"}],
            },
        )

    identity = await _client(handler).fetch_profile("A")

    assert identity.id == "spotify-user"
    assert identity.display_name == "Listener"
    assert identity.avatar_url == "https://img.example.com/a.png"
    assert identity.country == "NL"


@pytest.mark.asyncio
async def test_fetch_profile_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "expired"})

    with pytest.raises(ProfileFetchError):
        await _client(handler).fetch_profile("A")


@pytest.mark.asyncio
async def test_fetch_profile_rejects_non_json_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(ProfileFetchError):
        await _client(handler).fetch_profile("A")


def _pending(created_at: int = 1_000_000) -> PendingAuthorization:
    return PendingAuthorization(
        code_verifier="verifier",
        state="state-1",
        redirect_uri="https://example.com/callback",
        created_at=created_at,
    )


def test_pending_authorization_roundtrip() -> None:
    encoder = PendingAuthorizationEncoder("signing-secret", ttl_seconds=600)

    token = encoder.encode(_pending())

    assert "=" not in token
    assert encoder.decode(token, now_ms=1_000_000 + 599_000) == _pending()


def test_pending_authorization_rejects_tampering() -> None:
    encoder = PendingAuthorizationEncoder("signing-secret")
    token = encoder.encode(_pending())
    forged = PendingAuthorizationEncoder("other-secret").encode(_pending())

    with pytest.raises(InvalidAuthStateError):
        encoder.decode(forged, now_ms=1_000_000)
    with pytest.raises(InvalidAuthStateError):
        encoder.decode(token[:-4] + "AAAA", now_ms=1_000_000)
    with pytest.raises(InvalidAuthStateError):
        encoder.decode("%%%not-base64%%%", now_ms=1_000_000)


def test_pending_authorization_expires() -> None:
    encoder = PendingAuthorizationEncoder("signing-secret", ttl_seconds=600)
    token = encoder.encode(_pending())

    with pytest.raises(InvalidAuthStateError):
        encoder.decode(token, now_ms=1_000_000 + 601_000)
