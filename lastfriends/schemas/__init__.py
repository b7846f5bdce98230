"""Public schema exports."""

from .auth import (
    IdentityResponse,
    MaterializeSessionRequest,
    ProviderIdentity,
    PublicIdentity,
    TokenSet,
)

__all__ = [
    "IdentityResponse",
    "MaterializeSessionRequest",
    "ProviderIdentity",
    "PublicIdentity",
    "TokenSet",
]
