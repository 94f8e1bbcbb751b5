"""TTL cache used for releases, repository lists, tokens and backoff markers.

Two backends share the CacheLayer protocol: an in-process store for
single-process deployments and tests, and a Redis-backed store when
several workers must see the same entries.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from gh_updater.core.redis_service import RedisService
from gh_updater.ops.metrics import inc

logger = logging.getLogger(__name__)


class CacheKeys:
    """Key layout of the cache namespace."""

    RELEASES = "releases:"
    TOKEN = "token:"
    REPOSITORIES = "repositories:"
    BACKOFF = "backoff:"

    @staticmethod
    def releases(repo_slug: str) -> str:
        return f"{CacheKeys.RELEASES}{repo_slug}"

    @staticmethod
    def token(app_id: str) -> str:
        return f"{CacheKeys.TOKEN}{app_id}"

    @staticmethod
    def repositories(app_id: str) -> str:
        return f"{CacheKeys.REPOSITORIES}{app_id}"

    @staticmethod
    def backoff(app_id: str) -> str:
        return f"{CacheKeys.BACKOFF}{app_id}"


class CacheLayer(Protocol):
    """Key/value cache with per-entry TTL. ``get`` returns None on a miss."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: float | None) -> None: ...

    async def invalidate(self, key: str) -> None: ...

    async def invalidate_prefix(self, prefix: str) -> int: ...


@dataclass
class CacheEntry:
    value: Any
    expires_at: float | None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryCache:
    """Process-local cache. Every operation on a key is serialized by one lock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    async def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                inc("cache_miss", attributes={"namespace": _namespace(key)})
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                inc("cache_miss", attributes={"namespace": _namespace(key)})
                return None
            inc("cache_hit", attributes={"namespace": _namespace(key)})
            return entry.value

    async def set(self, key: str, value: Any, ttl: float | None) -> None:
        with self._lock:
            expires_at = None if ttl is None else self._clock() + max(0.0, ttl)
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

    async def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    async def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)


class RedisCache:
    """CacheLayer over the shared Redis service.

    Entries without a TTL get the Redis default TTL so that nothing
    outlives an explicit upper bound.
    """

    def __init__(self, redis_service: RedisService) -> None:
        self._redis = redis_service

    async def get(self, key: str) -> Any | None:
        value = await self._redis.cache_get(key)
        inc("cache_hit" if value is not None else "cache_miss", attributes={"namespace": _namespace(key)})
        return value

    async def set(self, key: str, value: Any, ttl: float | None) -> None:
        await self._redis.cache_set(key, value, ttl_seconds=ttl)

    async def invalidate(self, key: str) -> None:
        await self._redis.cache_delete(key)

    async def invalidate_prefix(self, prefix: str) -> int:
        deleted = await self._redis.cache_delete_prefix(prefix)
        logger.debug("Invalidated cache prefix", extra={"prefix": prefix, "deleted": deleted})
        return deleted


def _namespace(key: str) -> str:
    return key.split(":", 1)[0]
