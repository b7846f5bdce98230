try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest
from fastapi import FastAPI

from lastfriends.core.config import SessionSettings
from lastfriends.core.errors import AuthError, InvalidSessionError, NoSessionTokenError
from lastfriends.dependencies import OptionalAuth, RequiredAuth, get_request_gate
from lastfriends.main import auth_error_handler
from lastfriends.schemas.auth import ProviderIdentity, TokenSet
from lastfriends.services.credential_vault import CredentialVault
from lastfriends.services.request_gate import RequestGate
from lastfriends.services.session_bridge import SessionBridge
from lastfriends.services.session_store import MemorySessionBackend, SessionStore

KEY = "2a" * 32


class NoRefreshClient:
    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        raise AssertionError("refresh not expected")


class ExplodingBridge:
    async def resolve_session(self, token: str):
        raise RuntimeError("store exploded")


@pytest.fixture
def bridge() -> SessionBridge:
    return SessionBridge(
        store=SessionStore(local=MemorySessionBackend()),
        vault=CredentialVault(key_hex=KEY),
        oauth_client=NoRefreshClient(),
        session_settings=SessionSettings(),
    )


@pytest.fixture
def gate(bridge) -> RequestGate:
    return RequestGate(bridge, SessionSettings())


async def _login(bridge: SessionBridge, user_id: str = "u1") -> str:
    return await bridge.create_session(
        ProviderIdentity(id=user_id, display_name=f"User {user_id}", email=f"{user_id}@example.com"),
        TokenSet(access_token=f"access-{user_id}", refresh_token="R", expires_in=3600),
    )


def test_debug_cookie_takes_precedence(gate) -> None:
    cookies = {"session_token": "prod", "session_token_debug": "debug"}

    assert gate.extract_token(cookies) == "debug"
    assert gate.extract_token({"session_token": "prod"}) == "prod"
    assert gate.extract_token({}) is None


@pytest.mark.asyncio
async def test_require_resolves_identity_and_access_token(gate, bridge) -> None:
    token = await _login(bridge)

    context = await gate.require({"session_token": token})

    assert context.identity.id == "u1"
    assert context.identity.email == "u1@example.com"
    assert context.access_token == "access-u1"
    assert "access-u1" not in repr(context)
    assert token not in repr(context)


@pytest.mark.asyncio
async def test_require_without_cookie_raises_no_session(gate) -> None:
    with pytest.raises(NoSessionTokenError):
        await gate.require({})


@pytest.mark.asyncio
async def test_require_with_unknown_token_raises_invalid_session(gate) -> None:
    with pytest.raises(InvalidSessionError):
        await gate.require({"session_token": "unknown"})


@pytest.mark.asyncio
async def test_optional_swallows_resolution_errors() -> None:
    gate = RequestGate(ExplodingBridge(), SessionSettings())

    assert await gate.optional({"session_token": "whatever"}) is None
    assert await gate.optional({}) is None


def _build_app(gate: RequestGate, calls: list[str]) -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(AuthError, auth_error_handler)
    app.dependency_overrides[get_request_gate] = lambda: gate

    @app.get("/protected")
    async def protected(auth: RequiredAuth) -> dict:
        calls.append("protected")
        return {"user": auth.identity.id}

    @app.get("/open")
    async def open_route(auth: OptionalAuth) -> dict:
        calls.append("open")
        return {"user": auth.identity.id if auth else None}

    return app


@pytest.mark.anyio
async def test_require_auth_never_invokes_handler_without_cookie(gate) -> None:
    calls: list[str] = []
    app = _build_app(gate, calls)

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get("/protected")

    assert response.status_code == 401
    assert response.json()["code"] == "NO_SESSION_TOKEN"
    assert calls == []


@pytest.mark.anyio
async def test_optional_auth_always_invokes_handler(gate) -> None:
    calls: list[str] = []
    app = _build_app(gate, calls)

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        anonymous = await client.get("/open")
        client.cookies.set("session_token", "unknown")
        invalid = await client.get("/open")

    assert anonymous.json() == {"user": None}
    assert invalid.json() == {"user": None}
    assert calls == ["open", "open"]


@pytest.mark.anyio
async def test_protected_handler_runs_once_with_identity(gate, bridge) -> None:
    calls: list[str] = []
    app = _build_app(gate, calls)
    prod_token = await _login(bridge, "u1")
    debug_token = await _login(bridge, "u2")

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        client.cookies.set("session_token", prod_token)
        first = await client.get("/protected")
        client.cookies.set("session_token_debug", debug_token)
        second = await client.get("/protected")

    assert first.json() == {"user": "u1"}
    assert second.json() == {"user": "u2"}
    assert calls == ["protected", "protected"]


@pytest.mark.anyio
async def test_invalid_session_response_hides_internals(gate) -> None:
    calls: list[str] = []
    app = _build_app(gate, calls)

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        client.cookies.set("session_token", "unknown")
        response = await client.get("/protected")

    assert response.status_code == 401
    assert response.json() == {
        "error": InvalidSessionError.default_message,
        "code": "INVALID_SESSION",
    }
    assert calls == []
