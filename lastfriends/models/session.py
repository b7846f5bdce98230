"""
Domain models for session persistence.
"""

from typing import Optional

from pydantic import BaseModel, Field


class SessionRecord(BaseModel):
    """Server-side session reachable only through an opaque session token."""

    subject_id: str = Field(..., description="Provider user id, or email as fallback.")
    display_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    access_token_ciphertext: str
    refresh_token_ciphertext: Optional[str] = None
    access_token_expires_at: int = Field(
        ..., description="Absolute access token deadline in epoch milliseconds."
    )
    provider: str = "spotify"
    created_at: int
    last_accessed_at: int


class PendingAuthorization(BaseModel):
    """OAuth handshake state carried in a signed cookie across the redirect."""

    code_verifier: str
    state: str
    redirect_uri: str
    created_at: int = Field(..., description="Epoch milliseconds.")


__all__ = ["PendingAuthorization", "SessionRecord"]
