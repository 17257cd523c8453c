"""Key-value store used for attempt counters, lockouts and the timeline cache.

Production runs on Redis. The in-memory backend mirrors the TTL semantics the
share subsystem depends on and is used by tests.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request

from config import settings


class KeyValueStore(ABC):
    """Minimal async TTL store contract."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment ``key``; the TTL is applied only when the key is created."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        ...

    @abstractmethod
    async def ttl(self, key: str) -> Optional[int]:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None) -> None:
        self._client = client or redis.from_url(url or settings.REDIS_URL, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.setex(key, max(int(ttl_seconds), 1), value)

    async def incr(self, key: str, ttl_seconds: int) -> int:
        # EXPIRE NX (Redis 7+) only sets a TTL on a key that has none.
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, max(int(ttl_seconds), 1), nx=True)
            current, _ = await pipe.execute()
        return int(current)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def ttl(self, key: str) -> Optional[int]:
        remaining = int(await self._client.ttl(key))
        return remaining if remaining >= 0 else None

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store with lazy TTL expiry. Not shared across instances."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._data[key] = (value, self._clock() + max(int(ttl_seconds), 1))

    async def incr(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                self._data[key] = ("1", self._clock() + max(int(ttl_seconds), 1))
                return 1
            value, expires_at = entry
            if expires_at is None:
                expires_at = self._clock() + max(int(ttl_seconds), 1)
            current = int(value) + 1
            self._data[key] = (str(current), expires_at)
            return current

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                if self._live(key) is not None:
                    removed += 1
                self._data.pop(key, None)
            return removed

    async def ttl(self, key: str) -> Optional[int]:
        async with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return max(int(entry[1] - self._clock()), 0)

    def keys(self) -> List[str]:
        """Live keys, sorted. Expired entries are not reported."""
        return sorted(key for key in list(self._data) if self._live(key) is not None)


def get_kv_store(request: Request) -> KeyValueStore:
    """FastAPI dependency returning the application-wide store."""
    store = getattr(request.app.state, "kv_store", None)
    if store is None:
        store = RedisKeyValueStore()
        request.app.state.kv_store = store
    return store
