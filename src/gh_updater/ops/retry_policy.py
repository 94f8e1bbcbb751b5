from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
import redis.exceptions

from gh_updater.core.exceptions import RateLimitError

T = TypeVar("T")

AUTH_FAILURE_STATUSES = frozenset({401, 403})


@dataclass(frozen=True)
class RetryDecision:
    should_retry: bool
    reason: str


class AuthRetryableError(Exception):
    """Signals that a response was rejected for authentication reasons."""

    def __init__(self, *, status_code: int, reason: str):
        super().__init__(reason)
        self.status_code = status_code
        self.reason = reason


@dataclass(frozen=True)
class RefreshAndRetryOnce:
    """Two-attempt policy: on an auth failure refresh credentials once and retry.

    ``attempt`` receives the attempt number (1 or 2) and must raise
    AuthRetryableError when the response was rejected for auth reasons.
    ``on_auth_failure`` is awaited between the attempts. The second
    failure is surfaced unchanged.
    """

    max_attempts: int = 2

    def decide(self, *, attempt: int, error: AuthRetryableError) -> RetryDecision:
        if attempt >= self.max_attempts:
            return RetryDecision(False, f"auth failure after {attempt} attempts")
        return RetryDecision(True, f"status {error.status_code}; refreshing token")

    async def run(
        self,
        attempt: Callable[[int], Awaitable[T]],
        on_auth_failure: Callable[[], Awaitable[None]],
    ) -> T:
        number = 1
        while True:
            try:
                return await attempt(number)
            except AuthRetryableError as exc:
                decision = self.decide(attempt=number, error=exc)
                if not decision.should_retry:
                    raise
                await on_auth_failure()
                number += 1


def compute_backoff_seconds(*, attempt: int, base: int, maximum: int) -> int:
    if attempt <= 1:
        return min(base, maximum)
    value = base * (2 ** (attempt - 1))
    return min(int(value), int(maximum))


def is_retryable_exception(exc: Exception) -> bool:
    """Transient network, Redis and GitHub rate-limit failures."""
    retryable: tuple[type[BaseException], ...] = (
        TimeoutError,
        ConnectionError,
        httpx.TimeoutException,
        httpx.NetworkError,
        redis.exceptions.TimeoutError,
        redis.exceptions.ConnectionError,
        RateLimitError,
    )
    return isinstance(exc, retryable)
