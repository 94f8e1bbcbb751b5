from __future__ import annotations

from abc import ABC, abstractmethod

from gh_updater.schemas.packages import InstalledPackage, PackageKind


class InstallError(Exception):
    """Raised by a host when it cannot install a package archive."""


class HostPlatform(ABC):
    """Site the packages are installed on.

    Listing reads local metadata only. Installing receives an archive that
    was already downloaded in full and verified against a GitHub release.
    """

    name: str

    @abstractmethod
    async def list_installed_plugins(self) -> list[InstalledPackage]: ...

    @abstractmethod
    async def list_installed_themes(self) -> list[InstalledPackage]: ...

    @abstractmethod
    async def install_package_archive(self, kind: PackageKind, slug: str, archive: bytes) -> None:
        """Install ``archive`` over the package.

        Raises:
            InstallError: If the host rejected the archive
        """

    async def list_installed(self, kind: PackageKind) -> list[InstalledPackage]:
        if kind == PackageKind.PLUGIN:
            return await self.list_installed_plugins()
        return await self.list_installed_themes()
