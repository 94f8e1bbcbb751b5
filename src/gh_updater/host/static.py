from __future__ import annotations

from dataclasses import dataclass, field

from gh_updater.host.base import HostPlatform, InstallError
from gh_updater.schemas.packages import InstalledPackage, PackageKind


@dataclass
class InstallCall:
    kind: PackageKind
    slug: str
    size: int


class StaticHost(HostPlatform):
    """In-memory host for embedding and tests.

    Installing records the call and, when the archive carries a version
    label registered with ``version_for``, bumps the installed version.
    """

    name = "static"

    def __init__(
        self,
        plugins: list[InstalledPackage] | None = None,
        themes: list[InstalledPackage] | None = None,
        fail_with: str | None = None,
    ) -> None:
        self.plugins = list(plugins or [])
        self.themes = list(themes or [])
        self.fail_with = fail_with
        self.installs: list[InstallCall] = []
        self._archive_versions: dict[bytes, str] = {}

    def version_for(self, archive: bytes, version: str) -> None:
        self._archive_versions[archive] = version

    async def list_installed_plugins(self) -> list[InstalledPackage]:
        return list(self.plugins)

    async def list_installed_themes(self) -> list[InstalledPackage]:
        return list(self.themes)

    async def install_package_archive(self, kind: PackageKind, slug: str, archive: bytes) -> None:
        if self.fail_with:
            raise InstallError(self.fail_with)
        if not archive:
            raise InstallError("Empty package archive")

        self.installs.append(InstallCall(kind=kind, slug=slug, size=len(archive)))

        version = self._archive_versions.get(archive)
        if version is None:
            return
        packages = self.plugins if kind == PackageKind.PLUGIN else self.themes
        for index, package in enumerate(packages):
            if package.slug == slug:
                packages[index] = package.model_copy(update={"version": version})
