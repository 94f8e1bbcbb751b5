"""WordPress site on the local filesystem.

Plugin headers are read from the main plugin file, theme headers from
``style.css``, the same way WordPress reads the first 8KB of each file.
Installing replaces the package directory with the archive's top-level
folder; GitHub zipballs wrap everything in ``owner-repo-sha/``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
import zipfile
from pathlib import Path

from gh_updater.host.base import HostPlatform, InstallError
from gh_updater.schemas.packages import InstalledPackage, PackageKind

logger = logging.getLogger(__name__)

_HEADER_BYTES = 8192


def read_file_headers(path: Path, headers: dict[str, str]) -> dict[str, str]:
    """Read WordPress-style ``Key: value`` headers from the top of a file."""
    try:
        with path.open("rb") as fh:
            text = fh.read(_HEADER_BYTES).decode("utf-8", errors="replace")
    except OSError:
        return {}

    text = text.replace("\r", "\n")
    values: dict[str, str] = {}
    for field, label in headers.items():
        match = re.search(
            rf"^(?:[ \t]*<\?php)?[ \t/*#@]*{re.escape(label)}:(.*)$",
            text,
            re.MULTILINE | re.IGNORECASE,
        )
        if match:
            value = re.sub(r"\s*(?:\*/|\?>).*", "", match.group(1)).strip()
            if value:
                values[field] = value
    return values


PLUGIN_HEADERS = {"name": "Plugin Name", "version": "Version", "update_uri": "Update URI"}
THEME_HEADERS = {"name": "Theme Name", "version": "Version", "update_uri": "Update URI"}


class WordPressHost(HostPlatform):
    name = "wordpress"

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.plugins_dir = self.root / "wp-content" / "plugins"
        self.themes_dir = self.root / "wp-content" / "themes"

    async def list_installed_plugins(self) -> list[InstalledPackage]:
        return await asyncio.to_thread(self._scan_plugins)

    async def list_installed_themes(self) -> list[InstalledPackage]:
        return await asyncio.to_thread(self._scan_themes)

    async def install_package_archive(self, kind: PackageKind, slug: str, archive: bytes) -> None:
        await asyncio.to_thread(self._install, kind, slug, archive)

    def _scan_plugins(self) -> list[InstalledPackage]:
        if not self.plugins_dir.is_dir():
            return []

        candidates: list[tuple[str, Path]] = []
        for entry in sorted(self.plugins_dir.iterdir()):
            if entry.is_file() and entry.suffix == ".php":
                candidates.append((entry.name, entry))
            elif entry.is_dir():
                for php in sorted(entry.glob("*.php")):
                    candidates.append((f"{entry.name}/{php.name}", php))

        plugins = []
        for slug, path in candidates:
            headers = read_file_headers(path, PLUGIN_HEADERS)
            if "name" not in headers:
                continue
            plugins.append(
                InstalledPackage(
                    slug=slug,
                    name=headers["name"],
                    version=headers.get("version", ""),
                    update_uri=headers.get("update_uri", ""),
                )
            )
        return plugins

    def _scan_themes(self) -> list[InstalledPackage]:
        if not self.themes_dir.is_dir():
            return []

        themes = []
        for entry in sorted(self.themes_dir.iterdir()):
            stylesheet = entry / "style.css"
            if not stylesheet.is_file():
                continue
            headers = read_file_headers(stylesheet, THEME_HEADERS)
            if "name" not in headers:
                continue
            themes.append(
                InstalledPackage(
                    slug=entry.name,
                    name=headers["name"],
                    version=headers.get("version", ""),
                    update_uri=headers.get("update_uri", ""),
                )
            )
        return themes

    def _target_dir(self, kind: PackageKind, slug: str) -> Path:
        # Plugin slugs look like "dir/main.php"; single-file plugins have no directory
        directory = slug.split("/", 1)[0] if kind == PackageKind.PLUGIN else slug
        if kind == PackageKind.PLUGIN and "/" not in slug:
            raise InstallError(f"Single-file plugin {slug} cannot be replaced from an archive")
        if not directory or directory in (".", "..") or "\\" in directory:
            raise InstallError(f"Invalid package slug: {slug}")
        base = self.plugins_dir if kind == PackageKind.PLUGIN else self.themes_dir
        return base / directory

    def _install(self, kind: PackageKind, slug: str, archive: bytes) -> None:
        target = self._target_dir(kind, slug)

        with tempfile.TemporaryDirectory(prefix="gh_updater_") as staging:
            staging_path = Path(staging)
            archive_path = staging_path / "package.zip"
            archive_path.write_bytes(archive)

            extracted = staging_path / "extracted"
            try:
                with zipfile.ZipFile(archive_path) as zf:
                    for member in zf.namelist():
                        member_path = Path(member)
                        if member_path.is_absolute() or ".." in member_path.parts:
                            raise InstallError(f"Archive entry escapes the package: {member}")
                    zf.extractall(extracted)
            except zipfile.BadZipFile as e:
                raise InstallError(f"Not a zip archive: {e}") from e

            source = self._package_root(extracted)
            target.parent.mkdir(parents=True, exist_ok=True)
            backup = staging_path / "previous"

            had_previous = target.exists()
            if had_previous:
                shutil.move(str(target), str(backup))
            try:
                shutil.move(str(source), str(target))
            except OSError as e:
                if had_previous:
                    shutil.move(str(backup), str(target))
                raise InstallError(f"Could not replace {target.name}: {e}") from e

        logger.info(
            "Installed package archive",
            extra={"kind": kind.value, "slug": slug, "path": str(target)},
        )

    @staticmethod
    def _package_root(extracted: Path) -> Path:
        if not extracted.is_dir():
            raise InstallError("Archive is empty")
        entries = [entry for entry in extracted.iterdir() if entry.name != "__MACOSX"]
        if not entries:
            raise InstallError("Archive is empty")
        if len(entries) == 1 and entries[0].is_dir():
            return entries[0]
        return extracted
