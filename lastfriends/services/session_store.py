"""
Key-value persistence for session records.

``SessionStore`` puts one interface over two interchangeable backends: a
process-local map and a shared Redis instance. When the shared backend cannot
be reached, each call is served by the local map instead of failing the
request. That degradation breaks cross-process session visibility in a
multi-instance deployment, so every transition into and out of it is logged.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from lastfriends.core.errors import StoreUnavailableError
from lastfriends.models.session import SessionRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class SessionBackend(Protocol):
    """Operations every session backend provides. Payloads are JSON strings."""

    kind: str

    async def put(self, token: str, payload: str, ttl_seconds: int) -> None: ...

    async def get(self, token: str) -> Optional[str]: ...

    async def delete(self, token: str) -> None: ...

    async def count(self) -> int: ...


class MemorySessionBackend:
    """Process-local backend; expiry is enforced on read and by :meth:`sweep`.

    No method awaits between reading and writing the map, so interleaved
    coroutines never observe a torn entry.
    """

    kind = "memory"

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[float, int, str]] = {}

    def _is_expired(self, entry: Tuple[float, int, str], now: float) -> bool:
        stored_at, ttl_seconds, _ = entry
        return now > stored_at + ttl_seconds

    async def put(self, token: str, payload: str, ttl_seconds: int) -> None:
        self._entries[token] = (self._clock(), ttl_seconds, payload)

    async def get(self, token: str) -> Optional[str]:
        entry = self._entries.get(token)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            self._entries.pop(token, None)
            return None
        return entry[2]

    async def delete(self, token: str) -> None:
        self._entries.pop(token, None)

    async def count(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._entries.values() if not self._is_expired(entry, now))

    def sweep(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        now = self._clock()
        expired = [
            token for token, entry in self._entries.items() if self._is_expired(entry, now)
        ]
        for token in expired:
            self._entries.pop(token, None)
        return len(expired)


class RedisSessionBackend:
    """Shared backend relying on Redis native per-key expiry."""

    kind = "redis"

    def __init__(self, client: Redis, *, key_prefix: str = "session:") -> None:
        self._redis = client
        self._prefix = key_prefix

    def _key(self, token: str) -> str:
        return f"{self._prefix}{token}"

    async def put(self, token: str, payload: str, ttl_seconds: int) -> None:
        try:
            await self._redis.set(self._key(token), payload, ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(str(exc)) from exc

    async def get(self, token: str) -> Optional[str]:
        try:
            payload = await self._redis.get(self._key(token))
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(str(exc)) from exc
        if payload is None:
            return None
        if isinstance(payload, (bytes, bytearray)):
            return payload.decode("utf-8")
        return payload

    async def delete(self, token: str) -> None:
        try:
            await self._redis.delete(self._key(token))
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(str(exc)) from exc

    async def count(self) -> int:
        try:
            total = 0
            async for _ in self._redis.scan_iter(match=f"{self._prefix}*"):
                total += 1
            return total
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(str(exc)) from exc


def create_redis_client(url: str, *, socket_timeout: float = 5.0) -> Redis:
    """Instantiate an asyncio Redis client from URL."""
    return Redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=False,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )


class SessionStore:
    """Session persistence with TTL, falling back to the local map on outages."""

    def __init__(
        self,
        local: MemorySessionBackend,
        shared: SessionBackend | None = None,
    ) -> None:
        self._local = local
        self._shared = shared
        self._degraded = False

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _mark_degraded(self, operation: str, exc: Exception) -> None:
        if not self._degraded:
            self._degraded = True
            logger.warning(
                "Shared session store unavailable during %s (%s); serving from "
                "process-local store. Sessions are not visible across instances "
                "until it recovers.",
                operation,
                exc,
            )

    def _mark_healthy(self) -> None:
        if self._degraded:
            self._degraded = False
            logger.info("Shared session store recovered; leaving degraded mode.")

    async def put(self, token: str, record: SessionRecord, ttl_seconds: int) -> None:
        """Upsert a record and restart its TTL."""
        payload = record.model_dump_json()
        if self._shared is not None:
            try:
                await self._shared.put(token, payload, ttl_seconds)
            except StoreUnavailableError as exc:
                self._mark_degraded("put", exc)
            else:
                self._mark_healthy()
                return
        await self._local.put(token, payload, ttl_seconds)

    async def get(self, token: str) -> SessionRecord | None:
        """Return the record for ``token`` or ``None`` when unknown or expired."""
        payload: Optional[str]
        if self._shared is not None:
            try:
                payload = await self._shared.get(token)
            except StoreUnavailableError as exc:
                self._mark_degraded("get", exc)
                payload = await self._local.get(token)
            else:
                self._mark_healthy()
        else:
            payload = await self._local.get(token)

        if payload is None:
            return None
        return SessionRecord.model_validate_json(payload)

    async def delete(self, token: str) -> None:
        """Remove a record; deleting an unknown token is not an error."""
        if self._shared is not None:
            try:
                await self._shared.delete(token)
            except StoreUnavailableError as exc:
                self._mark_degraded("delete", exc)
            else:
                self._mark_healthy()
        await self._local.delete(token)

    def sweep(self) -> int:
        """Drop expired records from the process-local map."""
        return self._local.sweep()

    async def stats(self) -> Dict[str, Any]:
        """Describe the store for observability; never used for correctness."""
        stats: Dict[str, Any] = {
            "backend_kind": self._local.kind,
            "local_count": await self._local.count(),
            "degraded": self._degraded,
        }
        if self._shared is None:
            stats["count"] = stats["local_count"]
            return stats

        stats["backend_kind"] = self._shared.kind
        try:
            stats["count"] = await self._shared.count()
        except StoreUnavailableError:
            stats["count"] = None
            stats["connected"] = False
        else:
            stats["connected"] = True
        return stats


async def run_periodic_sweep(store: SessionStore, interval_seconds: float) -> None:
    """Sweep expired local records until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = store.sweep()
        if removed:
            logger.info("Swept %d expired sessions from local store.", removed)


__all__ = [
    "MemorySessionBackend",
    "RedisSessionBackend",
    "SessionBackend",
    "SessionStore",
    "create_redis_client",
    "run_periodic_sweep",
]
