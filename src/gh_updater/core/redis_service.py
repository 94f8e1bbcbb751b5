"""Redis service for shared caching and cross-process locking.

Used when the updater runs as several worker processes:
- Release, repository and token caching with TTLs
- Prefix invalidation driven by webhooks
- Single-flight locks for package operations
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig:
    """Redis connection configuration."""

    url: str = "redis://localhost:6379/0"

    max_connections: int = 50

    # Timeouts
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0

    retry_on_timeout: bool = True
    health_check_interval: int = 30

    # Key prefix for namespace isolation
    prefix: str = "gh_updater:"

    default_ttl_seconds: int = 3600


class RedisService:
    """Redis service with connection pooling."""

    def __init__(self, config: Optional[RedisConfig] = None):
        self.config = config or RedisConfig()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    async def connect(self) -> None:
        """Establish connection pool to Redis."""
        if self._pool is not None:
            return

        self._pool = ConnectionPool.from_url(
            self.config.url,
            max_connections=self.config.max_connections,
            socket_timeout=self.config.socket_timeout,
            socket_connect_timeout=self.config.socket_connect_timeout,
            retry_on_timeout=self.config.retry_on_timeout,
            health_check_interval=self.config.health_check_interval,
            decode_responses=True,
        )

        self._client = Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
            logger.info(f"Redis connected: {self.config.url}")
        except Exception as e:
            logger.error(f"Redis connection failed: {e}")
            raise

    async def disconnect(self) -> None:
        """Close Redis connections."""
        if self._client:
            await self._client.aclose()
            self._client = None

        if self._pool:
            await self._pool.disconnect()
            self._pool = None

        logger.info("Redis disconnected")

    @asynccontextmanager
    async def get_client(self) -> AsyncIterator[Redis]:
        """Get a Redis client from the pool.

        Usage:
            async with redis_service.get_client() as client:
                await client.set("key", "value")
        """
        if self._client is None:
            await self.connect()
        yield self._client

    def _key(self, *parts: str) -> str:
        """Build a namespaced key."""
        return f"{self.config.prefix}{':'.join(parts)}"

    # =========================================
    # CACHING
    # =========================================

    async def cache_get(self, key: str) -> Optional[Any]:
        """Get a cached value."""
        async with self.get_client() as client:
            data = await client.get(self._key("cache", key))
            if data:
                return json.loads(data)
            return None

    async def cache_set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        """Set a cached value. A TTL of None uses the default TTL."""
        ttl = int(max(1, ttl_seconds or self.config.default_ttl_seconds))
        async with self.get_client() as client:
            await client.setex(
                self._key("cache", key),
                ttl,
                json.dumps(value, default=str),
            )

    async def cache_delete(self, key: str) -> None:
        """Delete a cached value."""
        async with self.get_client() as client:
            await client.delete(self._key("cache", key))

    async def cache_delete_prefix(self, prefix: str) -> int:
        """Delete every cached value whose key starts with prefix."""
        deleted = 0
        pattern = self._key("cache", prefix) + "*"
        async with self.get_client() as client:
            batch: list[str] = []
            async for key in client.scan_iter(match=pattern, count=200):
                batch.append(key)
                if len(batch) >= 200:
                    deleted += await client.delete(*batch)
                    batch.clear()
            if batch:
                deleted += await client.delete(*batch)
        return deleted

    # =========================================
    # DISTRIBUTED LOCKING
    # =========================================

    @asynccontextmanager
    async def try_lock(self, name: str, lease_seconds: float) -> AsyncIterator[bool]:
        """Non-blocking lock with an auto-release lease.

        A holder that outlives the lease (crashed worker) loses the lock
        when Redis expires the key.

        Yields:
            True if the lock was acquired
        """
        async with self.get_client() as client:
            lock = Lock(
                client,
                self._key("lock", name),
                timeout=lease_seconds,
                blocking=False,
            )
            acquired = await lock.acquire()

        try:
            yield acquired
        finally:
            if acquired:
                try:
                    await lock.release()
                except LockError:
                    logger.warning(
                        "Redis lock expired before release",
                        extra={"lock": name},
                    )

    # =========================================
    # HEALTH
    # =========================================

    async def health_check(self) -> dict[str, Any]:
        """Check Redis health."""
        try:
            async with self.get_client() as client:
                info = await client.info("server")
                return {
                    "status": "healthy",
                    "version": info.get("redis_version"),
                    "uptime_in_seconds": info.get("uptime_in_seconds"),
                }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }
