"""Update status decisions for discovered packages."""

from __future__ import annotations

import logging

from gh_updater.core.exceptions import ResolveError
from gh_updater.schemas.packages import Package, UpdateStatus
from gh_updater.services.release_resolver import ReleaseResolver
from gh_updater.services.versioning import compare_versions, normalize_version

logger = logging.getLogger(__name__)


class UpdateDecisionEngine:
    """
    Compares the installed version against the latest release of the
    package's channel.

    The result is always a status value; a package whose releases could
    not be fetched reports ``error`` and never ``up_to_date``.
    """

    def __init__(self, resolver: ReleaseResolver):
        self.resolver = resolver

    async def decide(self, package: Package) -> UpdateStatus:
        if not package.is_linked:
            return UpdateStatus.unmanaged()

        try:
            release = await self.resolver.resolve_latest(
                package.repo_slug,
                package.release_channel,
                package.app_id,
            )
        except ResolveError as e:
            return UpdateStatus.error(f"Could not check GitHub releases: {e.cause}")
        except TimeoutError as e:
            return UpdateStatus.error(f"Timed out checking GitHub releases: {e}")

        if release is None:
            return UpdateStatus.up_to_date()

        return self.compare(package, release.tag_name)

    def compare(self, package: Package, latest: str) -> UpdateStatus:
        result = compare_versions(package.installed_version, latest)
        if result is None:
            if normalize_version(package.installed_version) == normalize_version(latest):
                return UpdateStatus.up_to_date(latest)
            logger.warning(
                "Version is not SemVer; treating as update available",
                extra={
                    "repo": package.repo_slug,
                    "installed": package.installed_version,
                    "latest": latest,
                },
            )
            return UpdateStatus.update_available(latest)

        if result < 0:
            return UpdateStatus.update_available(latest)
        if result > 0:
            return UpdateStatus.rollback_available(latest)
        return UpdateStatus.up_to_date(latest)
