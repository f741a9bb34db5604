"""
Keyed Short-Lived Store

Small key/value abstraction for state that only needs to live for minutes:
pending one-time codes and revoked session tokens.

Two backends:
- InMemoryKeyedStore: process-local dict, for single-instance deployments.
  Entries expire lazily on read and in bulk via sweep_expired().
- RedisKeyedStore: shared store for multi-instance deployments. Redis
  handles expiry natively.

The active store is created in the application lifespan, kept on
`app.state.keyed_store`, and injected with `Depends(get_keyed_store)`.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from fastapi import Request
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class KeyedStore(ABC):
    """Interface for short-lived keyed state with expiry."""

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the value for key, or None if missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        """Store value under key, optionally expiring after ttl_seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key if present."""

    @abstractmethod
    async def sweep_expired(self) -> int:
        """Drop expired entries. Returns the number removed."""


class InMemoryKeyedStore(KeyedStore):
    """
    Process-local keyed store.

    Safe under asyncio's cooperative scheduling: no method awaits between
    reading and writing the dict. A restart loses every entry.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[str, tuple[dict[str, Any], float | None]] = {}

    def _is_expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._is_expired(expires_at):
            del self._entries[key]
            return None
        return dict(value)

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._entries[key] = (dict(value), expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def sweep_expired(self) -> int:
        expired = [key for key, (_, exp) in self._entries.items() if self._is_expired(exp)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired keyed-store entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class RedisKeyedStore(KeyedStore):
    """Keyed store backed by Redis. Values are stored as JSON strings."""

    def __init__(self, client: Redis, prefix: str = "keyed:"):
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> dict[str, Any] | None:
        raw = await self._client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        await self._client.set(self._key(key), json.dumps(value), ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def sweep_expired(self) -> int:
        # Redis expires keys on its own
        return 0


def get_keyed_store(request: Request) -> KeyedStore:
    """FastAPI dependency returning the application's keyed store."""
    return request.app.state.keyed_store
