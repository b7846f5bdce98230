"""
FastAPI application entrypoint for the LastFriends session bridge.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lastfriends.api.routes import router as api_router
from lastfriends.core.config import get_settings
from lastfriends.core.errors import AuthError
from lastfriends.core.logging import configure_logging
from lastfriends.dependencies import get_credential_vault, get_session_store
from lastfriends.services import run_periodic_sweep

logger = logging.getLogger(__name__)


async def auth_error_handler(_: Request, exc: AuthError) -> JSONResponse:
    """Render user-facing authentication errors with their stable code."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
    )


async def general_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors without leaking internals."""
    logger.exception("Unexpected error: %s", exc.__class__.__name__)
    return JSONResponse(
        status_code=500,
        content={"error": "Something went wrong. Please try again.", "code": "INTERNAL_ERROR"},
    )


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the local-store sweeper for the lifetime of the application."""
    settings = get_settings()
    sweeper = asyncio.create_task(
        run_periodic_sweep(get_session_store(), settings.session.sweep_interval_seconds)
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    # Fail at startup rather than on the first login when the key is unusable.
    get_credential_vault()

    app = FastAPI(
        title="LastFriends",
        version="0.1.0",
        description="Session bridge between Spotify logins and server-side sessions.",
        lifespan=lifespan,
    )
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
