from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import TypeVar

from gh_updater.core.exceptions import OperationTimeoutError

T = TypeVar("T")


@asynccontextmanager
async def deadline(operation: str, seconds: float) -> AsyncIterator[None]:
    """Bound the enclosed block; expiry raises OperationTimeoutError."""
    timeout_cm = asyncio.timeout(seconds)
    try:
        async with timeout_cm:
            yield
    except TimeoutError as exc:
        if isinstance(exc, OperationTimeoutError) or not timeout_cm.expired():
            raise
        raise OperationTimeoutError(operation, seconds) from exc


async def with_deadline(awaitable: Awaitable[T], *, operation: str, seconds: float) -> T:
    async with deadline(operation, seconds):
        return await awaitable
