"""
gateway/session_store.py — Session Store

Keeps each Session as one JSON blob under session:<id>, with a TTL that is
refreshed on every write. The store is the only state shared between
requests; there is no cross-request locking, so the last write wins.

Backends:
    InMemorySessionStore   single process, tests and local development
    RedisSessionStore      redis.asyncio, shared across workers

Store failures are raised as StoreError.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from agent.session import Session
from exceptions import StoreError
from observability.logger import get_logger, short_id

log = get_logger(__name__)

DEFAULT_KEY_PREFIX = "session:"


class SessionStore(ABC):
    """Async key/value store for sessions with per-key TTL."""

    def __init__(self, key_prefix: str = DEFAULT_KEY_PREFIX):
        self.key_prefix = key_prefix

    def key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        """Return the stored session, or None if absent or expired."""

    @abstractmethod
    async def set(self, session: Session, ttl_seconds: int) -> None:
        """Write the session and (re)start its TTL."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        ...

    async def aclose(self) -> None:
        return None


def _decode(session_id: str, raw: str | bytes) -> Optional[Session]:
    try:
        return Session.from_json(raw)
    except ValidationError as e:
        log.error("session_store.corrupt_record", session=short_id(session_id), error=str(e))
        return None


# ─────────────────────────────────────────────────────────────────────────────
# In-memory backend
# ─────────────────────────────────────────────────────────────────────────────


class InMemorySessionStore(SessionStore):
    """
    Dict-backed store. Records are kept serialized so callers never share a
    live Session object with the store. Expired keys are evicted lazily on
    read. Clock injectable for tests.
    """

    def __init__(
        self,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(key_prefix)
        self._records: dict[str, tuple[float, str]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, session_id: str) -> Optional[Session]:
        key = self.key(session_id)
        async with self._lock:
            entry = self._records.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at <= self._clock():
                del self._records[key]
                log.debug("session_store.expired", session=short_id(session_id))
                return None
        return _decode(session_id, raw)

    async def set(self, session: Session, ttl_seconds: int) -> None:
        raw = session.to_json()
        async with self._lock:
            self._records[self.key(session.id)] = (self._clock() + ttl_seconds, raw)

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._records.pop(self.key(session_id), None)

    def __len__(self) -> int:
        return len(self._records)


# ─────────────────────────────────────────────────────────────────────────────
# Redis backend
# ─────────────────────────────────────────────────────────────────────────────


class RedisSessionStore(SessionStore):
    """
    redis.asyncio backend. One GET per read, one SET with EX per write.

    Usage:
        store = RedisSessionStore.from_url("redis://localhost:6379")
        await store.set(session, ttl_seconds=3600)
    """

    def __init__(self, client: aioredis.Redis, key_prefix: str = DEFAULT_KEY_PREFIX):
        super().__init__(key_prefix)
        self._redis = client

    @classmethod
    def from_url(cls, url: str, key_prefix: str = DEFAULT_KEY_PREFIX) -> "RedisSessionStore":
        return cls(aioredis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    async def get(self, session_id: str) -> Optional[Session]:
        try:
            raw = await self._redis.get(self.key(session_id))
        except RedisError as e:
            log.error("session_store.read_failed", session=short_id(session_id), error=str(e))
            raise StoreError(f"session read failed: {e}") from e
        if raw is None:
            return None
        return _decode(session_id, raw)

    async def set(self, session: Session, ttl_seconds: int) -> None:
        try:
            await self._redis.set(self.key(session.id), session.to_json(), ex=ttl_seconds)
        except RedisError as e:
            log.error("session_store.write_failed", session=short_id(session.id), error=str(e))
            raise StoreError(f"session write failed: {e}") from e

    async def delete(self, session_id: str) -> None:
        try:
            await self._redis.delete(self.key(session_id))
        except RedisError as e:
            log.error("session_store.delete_failed", session=short_id(session_id), error=str(e))
            raise StoreError(f"session delete failed: {e}") from e

    async def aclose(self) -> None:
        await self._redis.aclose()


def store_from_settings(settings) -> SessionStore:
    """Pick the backend named by settings.store.backend."""
    if settings.store.backend == "redis":
        log.info("session_store.backend", backend="redis")
        return RedisSessionStore.from_url(settings.redis_url, key_prefix=settings.store.key_prefix)
    log.info("session_store.backend", backend="memory")
    return InMemorySessionStore(key_prefix=settings.store.key_prefix)
