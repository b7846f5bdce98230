"""
FastAPI routes for the LastFriends session bridge.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import time
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from lastfriends.clients import generate_pkce_pair
from lastfriends.core.config import AppSettings
from lastfriends.core.errors import (
    AuthorizationDeniedError,
    InvalidAuthStateError,
    ProfileFetchError,
    ProviderUnavailableError,
    StateMismatchError,
    TokenExchangeError,
)
from lastfriends.dependencies import (
    OptionalAuth,
    RequiredAuth,
    get_app_settings,
    get_pending_auth_encoder,
    get_session_bridge,
    get_session_store,
    get_spotify_oauth_client,
)
from lastfriends.models.session import PendingAuthorization
from lastfriends.schemas import (
    IdentityResponse,
    MaterializeSessionRequest,
    TokenSet,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _set_cookie(
    response: Response,
    settings: AppSettings,
    name: str,
    value: str,
    max_age: int,
) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        path="/",
        domain=settings.session.cookie_domain,
        secure=settings.session.cookie_secure or settings.is_production,
        httponly=True,
        samesite="lax",
    )


def _clear_cookie(response: Response, settings: AppSettings, name: str) -> None:
    response.delete_cookie(
        key=name,
        path="/",
        domain=settings.session.cookie_domain,
        secure=settings.session.cookie_secure or settings.is_production,
        httponly=True,
        samesite="lax",
    )


def _set_session_cookie(response: Response, settings: AppSettings, token: str) -> None:
    _set_cookie(
        response,
        settings,
        settings.session.cookie_name,
        token,
        settings.session.ttl_seconds,
    )


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/spotify/login", status_code=HTTPStatus.OK)
async def start_spotify_login(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_spotify_oauth_client)],
    encoder: Annotated[Any, Depends(get_pending_auth_encoder)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Spotify consent screen.",
    ),
) -> Response:
    """
    Kick off the PKCE flow: remember the verifier and state in a signed cookie
    and send the caller to the Spotify consent screen.
    """
    code_verifier, code_challenge = generate_pkce_pair()
    pending = PendingAuthorization(
        code_verifier=code_verifier,
        state=secrets.token_hex(16),
        redirect_uri=oauth_client.redirect_uri,
        created_at=int(time.time() * 1000),
    )
    authorization_url = oauth_client.build_authorization_url(
        state=pending.state,
        code_challenge=code_challenge,
        redirect_uri=pending.redirect_uri,
    )

    response: Response
    if redirect or _wants_html(request):
        response = RedirectResponse(
            url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    else:
        response = JSONResponse(
            content={"authorization_url": authorization_url, "state": pending.state}
        )
    _set_cookie(
        response,
        settings,
        settings.session.pending_cookie_name,
        encoder.encode(pending),
        settings.session.pending_auth_ttl_seconds,
    )
    response.headers["Cache-Control"] = "no-store"
    return response


@router.get("/auth/spotify/callback", status_code=HTTPStatus.OK)
async def handle_spotify_callback(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_spotify_oauth_client)],
    encoder: Annotated[Any, Depends(get_pending_auth_encoder)],
    bridge: Annotated[Any, Depends(get_session_bridge)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    state: Optional[str] = Query(default=None, description="OAuth state echoed by Spotify."),
    code: Optional[str] = Query(default=None, description="Authorization code."),
    error: Optional[str] = Query(default=None, description="Error reported by Spotify."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    """Complete the PKCE exchange, create a session and set its cookie."""
    if error:
        logger.info("Spotify authorization returned error=%s", error)
        raise AuthorizationDeniedError()

    raw_pending = request.cookies.get(settings.session.pending_cookie_name)
    if not raw_pending:
        raise InvalidAuthStateError()
    pending = encoder.decode(raw_pending)

    if not state or not hmac.compare_digest(state, pending.state):
        logger.warning("OAuth callback state did not match the pending authorization.")
        raise StateMismatchError()
    if not code:
        raise InvalidAuthStateError("The login response had no authorization code.")

    try:
        token_set = await oauth_client.exchange_authorization_code(
            code, pending.code_verifier, pending.redirect_uri
        )
        identity = await oauth_client.fetch_profile(token_set.access_token)
    except (TokenExchangeError, ProfileFetchError) as exc:
        logger.warning("Spotify login could not be completed: %s", exc.__class__.__name__)
        raise ProviderUnavailableError() from exc

    session_token = await bridge.create_session(identity, token_set)

    public_user = {
        "id": identity.id or identity.email,
        "email": identity.email,
        "name": identity.display_name,
        "image": identity.avatar_url,
    }
    response: Response
    redirect_target = settings.frontend_base_url
    if redirect_target and (redirect or _wants_html(request)):
        response = RedirectResponse(
            url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    else:
        response = JSONResponse(content={"status": "connected", "user": public_user})
    _set_session_cookie(response, settings, session_token)
    _clear_cookie(response, settings, settings.session.pending_cookie_name)
    response.headers["Cache-Control"] = "no-store"
    return response


@router.post("/auth/session", status_code=HTTPStatus.CREATED)
async def materialize_session(
    payload: MaterializeSessionRequest,
    oauth_client: Annotated[Any, Depends(get_spotify_oauth_client)],
    bridge: Annotated[Any, Depends(get_session_bridge)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> Response:
    """
    Turn provider tokens from a completed login into a server-side session.

    The tokens are verified by reading the owner's profile before anything is
    stored. Failures are returned to the caller, who may retry.
    """
    try:
        identity = await oauth_client.fetch_profile(payload.access_token)
    except ProfileFetchError as exc:
        raise ProviderUnavailableError(
            "Could not verify the Spotify login. Please try again."
        ) from exc

    token_set = TokenSet(
        access_token=payload.access_token,
        refresh_token=payload.refresh_token,
        expires_in=payload.expires_in,
    )
    session_token = await bridge.create_session(identity, token_set)

    response = JSONResponse(
        status_code=HTTPStatus.CREATED,
        content={"success": True, "message": "Session created."},
    )
    _set_session_cookie(response, settings, session_token)
    return response


@router.get("/auth/me", response_model=IdentityResponse)
async def read_current_identity(auth: RequiredAuth) -> IdentityResponse:
    """Return the caller's public identity; never token material."""
    return IdentityResponse(
        user=auth.identity,
        provider=auth.provider,
        token_expires_at=auth.token_expires_at,
        session_created_at=auth.session_created_at,
        last_accessed_at=auth.last_accessed_at,
        warning=auth.warning,
    )


@router.get("/auth/session-info", status_code=HTTPStatus.OK)
async def read_session_info(auth: OptionalAuth) -> dict:
    """Report whether the caller is logged in without requiring it."""
    if auth is None:
        return {"authenticated": False}
    return {
        "authenticated": True,
        "user": auth.identity.model_dump(),
        "provider": auth.provider,
    }


@router.post("/auth/logout", status_code=HTTPStatus.OK)
async def logout(
    request: Request,
    bridge: Annotated[Any, Depends(get_session_bridge)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> Response:
    """Delete the caller's session, if any, and clear the session cookies."""
    cookie_names = (settings.session.cookie_name, settings.session.debug_cookie_name)
    had_session = False
    for name in cookie_names:
        token = request.cookies.get(name)
        if token:
            had_session = True
            await bridge.delete_session(token)

    response = JSONResponse(
        content={
            "success": True,
            "message": "Logged out successfully",
            "cleared_session": had_session,
        }
    )
    for name in cookie_names:
        _clear_cookie(response, settings, name)
    return response


@router.get("/auth/status", status_code=HTTPStatus.OK)
async def read_auth_status(
    request: Request,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    store: Annotated[Any, Depends(get_session_store)],
) -> dict:
    """Report configuration presence and store health without exposing secrets."""
    return {
        "env": {
            "environment": settings.environment,
            "has_spotify_client_id": bool(settings.spotify.client_id),
            "has_spotify_client_secret": bool(settings.spotify.client_secret),
            "has_encryption_key": bool(settings.security.auth_encryption_key),
            "has_redis_url": bool(settings.redis.url),
            "cookie_domain": settings.session.cookie_domain,
        },
        "request": {
            "host": request.headers.get("x-forwarded-host") or request.headers.get("host"),
            "proto": request.headers.get("x-forwarded-proto") or request.url.scheme,
        },
        "store": await store.stats(),
    }


__all__ = ["router"]
