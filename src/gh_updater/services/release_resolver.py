"""Release lookup and channel-aware latest-release resolution."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from gh_updater.config import Settings
from gh_updater.core.exceptions import ApiError, AuthError, ResolveError
from gh_updater.schemas.packages import Release, ReleaseChannel, ReleaseNote
from gh_updater.services.cache import CacheKeys, CacheLayer
from gh_updater.services.github_client import RepositoryClient
from gh_updater.services.versioning import parse_version

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def _published(release: Release) -> datetime:
    if release.published_at is None:
        return _EPOCH
    if release.published_at.tzinfo is None:
        return release.published_at.replace(tzinfo=UTC)
    return release.published_at


def filter_channel(releases: list[Release], channel: ReleaseChannel) -> list[Release]:
    """Releases eligible for ``channel``.

    Pre-release channels match the channel name anywhere in the tag,
    case-insensitively. With no tagged pre-release the most recent
    pre-release is used instead.
    """
    if channel == ReleaseChannel.STABLE:
        return [r for r in releases if not r.prerelease]

    prereleases = [r for r in releases if r.prerelease]
    tagged = [r for r in prereleases if channel.value in r.tag_name.lower()]
    if tagged:
        return tagged
    if not prereleases:
        return []
    return [max(prereleases, key=_published)]


def sort_releases(releases: list[Release]) -> list[Release]:
    """Valid SemVer tags first, highest version first; the rest newest first."""
    versioned = []
    unversioned = []
    for release in releases:
        version = parse_version(release.tag_name)
        if version is None:
            unversioned.append(release)
        else:
            versioned.append((version, release))

    versioned.sort(key=lambda item: item[0], reverse=True)
    unversioned.sort(key=_published, reverse=True)
    return [release for _, release in versioned] + unversioned


class ReleaseResolver:
    """
    Resolves releases of a repository through the release cache.

    "No releases yet" is a normal state and resolves to None; failing to
    reach GitHub raises ResolveError.
    """

    def __init__(
        self,
        client: RepositoryClient,
        cache: CacheLayer,
        settings: Settings,
    ):
        self.client = client
        self.cache = cache
        self.settings = settings

    async def releases(self, repo_slug: str, app_id: str) -> list[Release]:
        """All published releases, newest first, through the cache.

        Raises:
            ResolveError: If GitHub could not be queried
            OperationTimeoutError: If GitHub did not answer in time
        """
        key = CacheKeys.releases(repo_slug)
        cached = await self.cache.get(key)
        if cached is not None:
            return [Release.model_validate(item) for item in cached]

        try:
            listing = await self.client.list_releases(app_id, repo_slug)
        except (ApiError, AuthError) as e:
            logger.warning(
                "Failed to fetch releases",
                extra={"repo": repo_slug, "app": app_id, "error": str(e)},
            )
            raise ResolveError(repo_slug, e) from e

        if listing.truncated:
            logger.info("Release list truncated", extra={"repo": repo_slug, "count": len(listing.items)})

        releases = sorted(listing.items, key=_published, reverse=True)
        await self.cache.set(
            key,
            [release.model_dump(mode="json") for release in releases],
            self.settings.release_cache_ttl_seconds,
        )
        return releases

    async def resolve_latest(
        self,
        repo_slug: str,
        channel: ReleaseChannel,
        app_id: str,
    ) -> Release | None:
        candidates = filter_channel(await self.releases(repo_slug, app_id), channel)
        if not candidates:
            logger.debug("No releases for channel", extra={"repo": repo_slug, "channel": channel.value})
            return None
        return sort_releases(candidates)[0]

    async def find_release(self, repo_slug: str, tag_name: str, app_id: str) -> Release | None:
        """Release whose tag equals ``tag_name`` exactly."""
        for release in await self.releases(repo_slug, app_id):
            if release.tag_name == tag_name:
                return release
        return None

    async def release_notes(self, repo_slug: str, app_id: str) -> list[ReleaseNote]:
        return [
            ReleaseNote(
                version=release.tag_name,
                notes=release.body,
                published_at=release.published_at,
                prerelease=release.prerelease,
            )
            for release in await self.releases(repo_slug, app_id)
        ]

    async def invalidate(self, repo_slug: str) -> None:
        await self.cache.invalidate(CacheKeys.releases(repo_slug))
