"""Service layer exports."""

from .credential_vault import (
    CredentialVault,
    generate_encryption_key,
    generate_session_token,
)
from .request_gate import AuthContext, RequestGate
from .session_bridge import ResolvedSession, SessionBridge, SessionState, classify
from .session_store import (
    MemorySessionBackend,
    RedisSessionBackend,
    SessionStore,
    create_redis_client,
    run_periodic_sweep,
)

__all__ = [
    "AuthContext",
    "CredentialVault",
    "MemorySessionBackend",
    "RedisSessionBackend",
    "RequestGate",
    "ResolvedSession",
    "SessionBridge",
    "SessionState",
    "SessionStore",
    "classify",
    "create_redis_client",
    "generate_encryption_key",
    "generate_session_token",
    "run_periodic_sweep",
]
