"""Discovery of installed plugins and themes that update from GitHub."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from gh_updater.core.exceptions import ConfigError
from gh_updater.host.base import HostPlatform
from gh_updater.schemas.packages import (
    InstalledPackage,
    Package,
    PackageKind,
    ReleaseChannel,
    normalize_repo_slug,
)
from gh_updater.services.package_settings import PackageSettingsStore

logger = logging.getLogger(__name__)


class PackageDiscovery:
    """
    Builds the Package list from host header metadata.

    Results are not cached: host plugin state can change between requests.
    A header that does not point at a GitHub repository is skipped, since
    many plugins set Update URIs unrelated to this service.
    """

    def __init__(
        self,
        host: HostPlatform,
        settings_store: PackageSettingsStore | None = None,
        default_channel: ReleaseChannel = ReleaseChannel.STABLE,
    ):
        self.host = host
        self.settings_store = settings_store
        self.default_channel = default_channel

    async def discover(self) -> list[Package]:
        channels = await self.settings_store.channels() if self.settings_store else {}

        packages: list[Package] = []
        seen: dict[tuple[str, PackageKind], str] = {}

        for kind in (PackageKind.PLUGIN, PackageKind.THEME):
            for installed in await self.host.list_installed(kind):
                try:
                    package = self._to_package(kind, installed, channels)
                except ConfigError as e:
                    logger.debug(
                        "Skipping package header",
                        extra={"slug": installed.slug, "kind": kind.value, "reason": str(e)},
                    )
                    continue

                key = (package.repo_slug, package.kind)
                if key in seen:
                    logger.warning(
                        "Repository declared by more than one package; keeping the first",
                        extra={"repo": package.repo_slug, "kept": seen[key], "skipped": package.slug},
                    )
                    continue
                seen[key] = package.slug
                packages.append(package)

        logger.info("Discovered packages", extra={"count": len(packages)})
        return packages

    def _to_package(
        self,
        kind: PackageKind,
        installed: InstalledPackage,
        channels: dict[tuple[str, PackageKind], ReleaseChannel],
    ) -> Package:
        repo_slug = normalize_repo_slug(installed.update_uri)
        if repo_slug is None:
            raise ConfigError(f"Update URI {installed.update_uri!r} is not a GitHub repository")

        try:
            return Package(
                slug=installed.slug,
                kind=kind,
                name=installed.name or installed.slug,
                repo_slug=repo_slug,
                installed_version=installed.version,
                release_channel=channels.get((repo_slug, kind), self.default_channel),
            )
        except ValidationError as e:
            raise ConfigError(str(e)) from e
