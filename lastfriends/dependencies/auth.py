"""
FastAPI dependencies that put the request gate in front of route handlers.

``require_auth`` raises before the handler runs when the caller has no live
session; ``optional_auth`` resolves the caller when it can and otherwise hands
the handler ``None``.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

from lastfriends.services.request_gate import AuthContext, RequestGate

from .clients import get_request_gate


async def require_auth(
    request: Request,
    gate: Annotated[RequestGate, Depends(get_request_gate)],
) -> AuthContext:
    context = await gate.require(request.cookies)
    request.state.auth = context
    return context


async def optional_auth(
    request: Request,
    gate: Annotated[RequestGate, Depends(get_request_gate)],
) -> Optional[AuthContext]:
    context = await gate.optional(request.cookies)
    request.state.auth = context
    return context


RequiredAuth = Annotated[AuthContext, Depends(require_auth)]
OptionalAuth = Annotated[Optional[AuthContext], Depends(optional_auth)]

__all__ = ["OptionalAuth", "RequiredAuth", "optional_auth", "require_auth"]
