"""Schemas related to OAuth flows and session identity."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TokenSet(BaseModel):
    """Tokens returned by the provider token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = Field(
        None, description="Lifetime in seconds; a default applies when absent."
    )
    scope: Optional[str] = None


class ProviderIdentity(BaseModel):
    """Profile snapshot used to populate a new session."""

    id: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    country: Optional[str] = None
    provider: str = "spotify"


class PublicIdentity(BaseModel):
    """Identity view that is safe to hand to handlers and clients."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None


class MaterializeSessionRequest(BaseModel):
    """Provider tokens obtained by a completed login, exchanged for a session."""

    access_token: str = Field(..., description="Provider access token.")
    refresh_token: Optional[str] = Field(None, description="Provider refresh token.")
    expires_in: Optional[int] = Field(None, description="Access token lifetime in seconds.")


class IdentityResponse(BaseModel):
    """Response body of the identity introspection endpoint."""

    authenticated: bool = True
    user: PublicIdentity
    provider: str
    token_expires_at: Optional[int] = None
    session_created_at: Optional[int] = None
    last_accessed_at: Optional[int] = None
    warning: Optional[str] = None


__all__ = [
    "IdentityResponse",
    "MaterializeSessionRequest",
    "ProviderIdentity",
    "PublicIdentity",
    "TokenSet",
]
