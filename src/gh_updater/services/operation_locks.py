"""Single-flight locks for package operations, keyed by repository."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4

from gh_updater.core.redis_service import RedisService

logger = logging.getLogger(__name__)


class OperationLockManager(Protocol):
    def hold(self, name: str, lease_seconds: float) -> AbstractAsyncContextManager[bool]:
        """Try to take the lock without waiting; yields whether it was acquired."""
        ...


@dataclass
class _Lease:
    token: str
    expires_at: float


class LocalOperationLocks:
    """Map of leases for a single process.

    A lease older than its deadline is treated as abandoned and may be
    taken over by the next caller.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._leases: dict[str, _Lease] = {}
        self._guard = threading.Lock()

    def _acquire(self, name: str, lease_seconds: float) -> str | None:
        with self._guard:
            now = self._clock()
            current = self._leases.get(name)
            if current is not None and current.expires_at > now:
                return None
            if current is not None:
                logger.warning("Reclaiming abandoned operation lock", extra={"lock": name})
            token = uuid4().hex
            self._leases[name] = _Lease(token=token, expires_at=now + lease_seconds)
            return token

    def _release(self, name: str, token: str) -> None:
        with self._guard:
            current = self._leases.get(name)
            if current is not None and current.token == token:
                del self._leases[name]

    def is_held(self, name: str) -> bool:
        with self._guard:
            current = self._leases.get(name)
            return current is not None and current.expires_at > self._clock()

    @asynccontextmanager
    async def hold(self, name: str, lease_seconds: float) -> AsyncIterator[bool]:
        token = self._acquire(name, lease_seconds)
        try:
            yield token is not None
        finally:
            if token is not None:
                self._release(name, token)


class RedisOperationLocks:
    """Cross-process locks backed by Redis.

    Falls back to process-local leases when Redis cannot be reached.
    """

    def __init__(
        self,
        redis_service: RedisService,
        fallback: LocalOperationLocks | None = None,
    ) -> None:
        self._redis = redis_service
        self._fallback = fallback or LocalOperationLocks()

    @asynccontextmanager
    async def hold(self, name: str, lease_seconds: float) -> AsyncIterator[bool]:
        async with AsyncExitStack() as stack:
            try:
                acquired = await stack.enter_async_context(
                    self._redis.try_lock(name, lease_seconds)
                )
            except Exception as e:
                logger.warning(
                    "Redis lock unavailable; using process-local lock",
                    extra={"lock": name, "error": str(e)},
                )
                acquired = await stack.enter_async_context(
                    self._fallback.hold(name, lease_seconds)
                )
            yield acquired
