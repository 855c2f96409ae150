"""
Expiring Key-Value Store

Small async key-value abstraction with per-entry expiry, shared by the rate
limiter and the verification code service. Two implementations:

- InMemoryExpiringStore: process-local dict with an injectable clock.
  Expired entries are evicted lazily on read and in bulk by ``sweep()``.
- RedisExpiringStore: JSON values with native Redis TTLs. Redis evicts
  on its own, so ``sweep()`` is a no-op.

Counters use ``increment``, which is atomic in both implementations.

An entry is expired once its ``expires_at`` is strictly before "now".
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC now."""
    return datetime.now(UTC)


class ExpiringStore(ABC):
    """Async key-value store whose entries expire at a given instant."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the live value for ``key``, or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, expires_at: datetime) -> None:
        """Store ``value`` until ``expires_at``, replacing any previous entry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    async def increment(self, key: str, expires_at: datetime) -> tuple[int, datetime]:
        """
        Atomically add one to the counter at ``key``.

        A missing or expired counter starts over at 1 and lives until
        ``expires_at``; a live one keeps its original expiry.

        Returns:
            The new count and the instant the counter expires
        """

    @abstractmethod
    async def sweep(self) -> int:
        """Evict expired entries and return how many were removed."""


class InMemoryExpiringStore(ExpiringStore):
    """Process-local store. Not shared between workers."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._entries: dict[str, tuple[Any, datetime]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at < self._clock():
            del self._entries[key]
            return None

        return value

    async def set(self, key: str, value: Any, expires_at: datetime) -> None:
        self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def increment(self, key: str, expires_at: datetime) -> tuple[int, datetime]:
        # No await between read and write, so this is atomic on the event loop
        entry = self._entries.get(key)
        if entry is None or entry[1] < self._clock():
            entry = (0, expires_at)

        count = entry[0] + 1
        self._entries[key] = (count, entry[1])
        return count, entry[1]

    async def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at < now]
        for key in expired:
            del self._entries[key]
        return len(expired)


class RedisExpiringStore(ExpiringStore):
    """
    Redis-backed store shared across workers.

    Values must be JSON-serializable. Keys are namespaced with ``prefix`` so
    several stores can share one Redis database.
    """

    def __init__(self, client: Redis, prefix: str, clock: Clock = utc_now):
        self._client = client
        self._prefix = prefix
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self._client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, expires_at: datetime) -> None:
        ttl_ms = int((expires_at - self._clock()).total_seconds() * 1000)
        if ttl_ms <= 0:
            # Already expired; make sure no stale value lingers
            await self._client.delete(self._key(key))
            return
        await self._client.set(self._key(key), json.dumps(value), px=ttl_ms)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def increment(self, key: str, expires_at: datetime) -> tuple[int, datetime]:
        now = self._clock()
        ttl_ms = max(1, int((expires_at - now).total_seconds() * 1000))
        redis_key = self._key(key)

        # MULTI/EXEC: the expiry is only set by the call that created the key
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.pexpire(redis_key, ttl_ms, nx=True)
        pipe.pttl(redis_key)
        count, _, remaining_ms = await pipe.execute()

        if remaining_ms < 0:
            remaining_ms = ttl_ms
        return int(count), now + timedelta(milliseconds=remaining_ms)

    async def sweep(self) -> int:
        return 0


def build_store(client: Redis | None, prefix: str, clock: Clock = utc_now) -> ExpiringStore:
    """Use Redis when a connected client is available, otherwise an in-memory store."""
    if client is None:
        logger.warning(f"Redis unavailable, using in-memory store for '{prefix}'")
        return InMemoryExpiringStore(clock)
    return RedisExpiringStore(client, prefix, clock)


__all__ = [
    "Clock",
    "ExpiringStore",
    "InMemoryExpiringStore",
    "RedisExpiringStore",
    "build_store",
    "utc_now",
]
