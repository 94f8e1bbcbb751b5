"""Async GitHub API client for installation repositories and releases.

Uses GitHub REST API v3 to:
- List repositories an App installation can access
- List releases of a repository
- Download release archives

Reference: https://docs.github.com/en/rest/releases
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import httpx
from pydantic import ValidationError

from gh_updater.config import Settings
from gh_updater.core.exceptions import ApiError, NotFoundError, OperationTimeoutError, RateLimitError
from gh_updater.observability.tracing import start_span
from gh_updater.ops.deadlines import deadline
from gh_updater.ops.metrics import inc
from gh_updater.ops.retry_policy import AUTH_FAILURE_STATUSES, AuthRetryableError, RefreshAndRetryOnce
from gh_updater.schemas.packages import Release, normalize_repo_slug
from gh_updater.services.cache import CacheKeys, CacheLayer
from gh_updater.services.token_provider import TokenProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Listing(Generic[T]):
    """Items collected across pages. ``truncated`` is set when the item cap was hit."""

    items: list[T] = field(default_factory=list)
    truncated: bool = False


def build_http_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Shared HTTP client for GitHub calls; tests pass an httpx.MockTransport."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.github_request_timeout_seconds, connect=5.0),
        transport=transport,
        headers={"User-Agent": "gh-updater"},
    )


class RepositoryClient:
    """
    GitHub API client authenticated as an App installation.

    Every call first obtains an installation token. A 401/403 answer that is
    not a rate limit invalidates the token and retries exactly once.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        cache: CacheLayer,
        http_client: httpx.AsyncClient,
        settings: Settings,
        retry_policy: RefreshAndRetryOnce | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._tokens = token_provider
        self._cache = cache
        self._http = http_client
        self._settings = settings
        self._retry = retry_policy or RefreshAndRetryOnce()
        self._clock = clock
        self.base_url = settings.github_api_base_url.rstrip("/")

    def _build_headers(self, token: str, accept: str) -> dict[str, str]:
        return {
            "Accept": accept,
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _request(
        self,
        app_id: str,
        method: str,
        url: str,
        *,
        accept: str = "application/vnd.github+json",
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make an authenticated API request with error handling.

        Raises:
            RateLimitError: If rate limited now or a backoff marker is active
            NotFoundError: If the resource does not exist
            ApiError: For other API errors, including a second auth rejection
            AuthError: If no installation token could be obtained
            OperationTimeoutError: If GitHub did not answer within the deadline
        """
        await self._check_backoff(app_id)

        if not url.startswith(("http://", "https://")):
            url = f"{self.base_url}{url}"

        async def attempt(number: int) -> httpx.Response:
            token = await self._tokens.get_installation_token(app_id)
            response = await self._send(method, url, self._build_headers(token, accept), **kwargs)
            if response.status_code in AUTH_FAILURE_STATUSES and not self._is_rate_limited(response):
                logger.info(
                    "GitHub rejected installation token",
                    extra={"app": app_id, "status": response.status_code, "attempt": number},
                )
                raise AuthRetryableError(
                    status_code=response.status_code,
                    reason=response.text[:200],
                )
            return response

        async def refresh() -> None:
            await self._tokens.invalidate(app_id)

        try:
            response = await self._retry.run(attempt, refresh)
        except AuthRetryableError as exc:
            raise ApiError(
                f"GitHub API authorization failed: {exc.status_code} - {exc.reason}",
                status_code=exc.status_code,
            ) from exc

        inc("github_request", attributes={"status": response.status_code})

        # Handle rate limiting
        if self._is_rate_limited(response):
            retry_after = self._retry_after_seconds(response)
            await self._cache.set(
                CacheKeys.backoff(app_id),
                {"until": self._clock() + retry_after},
                retry_after,
            )
            inc("rate_limited", attributes={"app_id": app_id})
            logger.warning(
                "GitHub rate limit hit; backing off",
                extra={"app": app_id, "retry_after": retry_after},
            )
            raise RateLimitError(
                f"GitHub API rate limit exceeded. Retry after {retry_after:g}s",
                status_code=response.status_code,
                retry_after=retry_after,
            )

        # Handle not found
        if response.status_code == 404:
            raise NotFoundError(f"Resource not found: {url}", status_code=404)

        # Handle other errors
        if response.status_code >= 400:
            raise ApiError(
                f"GitHub API error: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )

        return response

    async def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        **kwargs: Any,
    ) -> httpx.Response:
        seconds = self._settings.github_request_timeout_seconds
        try:
            async with deadline(f"GitHub {method} request", seconds):
                return await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise OperationTimeoutError(f"GitHub {method} request", seconds) from exc
        except httpx.TransportError as exc:
            raise ApiError(f"GitHub API unreachable: {exc}") from exc

    async def _check_backoff(self, app_id: str) -> None:
        marker = await self._cache.get(CacheKeys.backoff(app_id))
        if marker is None:
            return
        until = marker.get("until") if isinstance(marker, dict) else None
        remaining = max(0.0, float(until) - self._clock()) if until is not None else None
        raise RateLimitError(
            "GitHub API rate limit backoff in effect",
            status_code=429,
            retry_after=remaining,
        )

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code != 403:
            return False
        return (
            response.headers.get("X-RateLimit-Remaining") == "0"
            or "Retry-After" in response.headers
        )

    def _retry_after_seconds(self, response: httpx.Response) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(1.0, float(retry_after))
            except ValueError:
                pass

        reset = response.headers.get("X-RateLimit-Reset")
        if reset is not None:
            try:
                return max(1.0, float(reset) - self._clock())
            except ValueError:
                pass

        return float(self._settings.rate_limit_backoff_seconds)

    async def _paginate(self, app_id: str, path: str, extract: Callable[[Any], list[Any]]) -> Listing[Any]:
        cap = self._settings.pagination_item_cap
        listing: Listing[Any] = Listing()
        url: str | None = path
        params: dict[str, Any] | None = {"per_page": self._settings.pagination_page_size}

        while url:
            response = await self._request(app_id, "GET", url, params=params)
            try:
                data = response.json()
            except ValueError as e:
                raise ApiError(
                    f"GitHub returned malformed JSON for {path}",
                    status_code=response.status_code,
                ) from e
            listing.items.extend(extract(data))
            # next links already carry the query string
            params = None
            url = response.links.get("next", {}).get("url")

            if len(listing.items) >= cap:
                if url or len(listing.items) > cap:
                    listing.truncated = True
                    logger.warning(
                        "Listing truncated at item cap",
                        extra={"app": app_id, "path": path, "cap": cap},
                    )
                listing.items = listing.items[:cap]
                break

        return listing

    async def list_repositories(self, app_id: str) -> Listing[str]:
        """
        List repositories the app installation can access.

        Returns:
            Normalized ``owner/repo`` slugs
        """
        logger.debug("Listing installation repositories", extra={"app": app_id})

        def extract(data: Any) -> list[str]:
            repos = data.get("repositories", []) if isinstance(data, dict) else []
            slugs = []
            for repo in repos:
                slug = normalize_repo_slug(repo.get("full_name")) if isinstance(repo, dict) else None
                if slug:
                    slugs.append(slug)
            return slugs

        with start_span("github.list_repositories", attributes={"app_id": app_id}):
            return await self._paginate(app_id, "/installation/repositories", extract)

    async def list_releases(self, app_id: str, repo_slug: str) -> Listing[Release]:
        """
        List published releases of a repository. Drafts are skipped.

        Args:
            app_id: App whose installation token is used
            repo_slug: Repository in "owner/repo" format
        """
        logger.debug("Listing releases", extra={"app": app_id, "repo": repo_slug})

        def extract(data: Any) -> list[Release]:
            if not isinstance(data, list):
                return []
            releases = []
            for item in data:
                if not isinstance(item, dict) or not item.get("tag_name") or item.get("draft"):
                    continue
                try:
                    releases.append(Release.from_github(item))
                except ValidationError as e:
                    logger.warning(
                        "Skipping malformed release",
                        extra={"repo": repo_slug, "tag": str(item.get("tag_name")), "error": str(e)},
                    )
            return releases

        with start_span("github.list_releases", attributes={"app_id": app_id, "repo": repo_slug}):
            return await self._paginate(app_id, f"/repos/{repo_slug}/releases", extract)

    async def download_asset(self, app_id: str, release: Release) -> bytes:
        """
        Download the release archive.

        Release asset URLs answer with a redirect to storage; httpx drops the
        Authorization header when the redirect leaves the API origin.
        """
        if not release.download_url:
            raise NotFoundError(f"Release {release.tag_name} has no downloadable archive", status_code=404)

        with start_span("github.download_asset", attributes={"app_id": app_id, "tag": release.tag_name}):
            response = await self._request(
                app_id,
                "GET",
                release.download_url,
                accept="application/octet-stream",
                follow_redirects=True,
            )
        logger.info(
            "Downloaded release archive",
            extra={"app": app_id, "tag": release.tag_name, "bytes": len(response.content)},
        )
        return response.content
