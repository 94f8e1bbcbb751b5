"""Schemas for discovered packages, GitHub releases and update status."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

REPO_SLUG_PATTERN = re.compile(r"^[\w.-]+/[\w.-]+$")
_GITHUB_URL_PREFIX = re.compile(r"^(?:https?://)?(?:www\.)?github\.com/", re.IGNORECASE)


def normalize_repo_slug(value: str | None) -> str | None:
    """Normalize an Update URI or repository string to ``owner/repo``.

    Accepts bare slugs and github.com URLs. Returns None for anything that
    is not a repository reference; the comparison is case-insensitive so
    the slug is lowercased.
    """
    if not value:
        return None

    candidate = value.strip()
    candidate = _GITHUB_URL_PREFIX.sub("", candidate)
    candidate = candidate.strip("/")
    if candidate.lower().endswith(".git"):
        candidate = candidate[:-4]

    if not REPO_SLUG_PATTERN.match(candidate):
        return None
    return candidate.lower()


class PackageKind(str, Enum):
    PLUGIN = "plugin"
    THEME = "theme"


class ReleaseChannel(str, Enum):
    """Release channel a package follows."""

    STABLE = "stable"
    BETA = "beta"
    ALPHA = "alpha"
    DEVELOP = "develop"


class InstalledPackage(BaseModel):
    """Header metadata of an installed plugin or theme as reported by the host."""

    slug: str
    name: str = ""
    version: str = ""
    update_uri: str = ""


class Package(BaseModel):
    """A discovered plugin or theme whose Update URI points at a GitHub repo."""

    model_config = ConfigDict(frozen=True)

    slug: str = Field(..., min_length=1)
    kind: PackageKind
    name: str
    repo_slug: str
    installed_version: str = ""
    app_id: str | None = None
    release_channel: ReleaseChannel = ReleaseChannel.STABLE

    @field_validator("repo_slug")
    @classmethod
    def _validate_repo_slug(cls, value: str) -> str:
        normalized = normalize_repo_slug(value)
        if normalized is None:
            raise ValueError(f"Invalid repository slug: {value!r}")
        return normalized

    @property
    def is_linked(self) -> bool:
        return self.app_id is not None


class Release(BaseModel):
    """Immutable GitHub release record."""

    model_config = ConfigDict(frozen=True)

    tag_name: str
    name: str = ""
    html_url: str = ""
    download_url: str = ""
    prerelease: bool = False
    published_at: datetime | None = None
    body: str = ""

    @classmethod
    def from_github(cls, data: dict[str, Any]) -> "Release":
        """Build a Release from a GitHub REST release object.

        A ``.zip`` asset is preferred over the source zipball because
        built plugins usually ship as an uploaded asset.
        """
        download_url = ""
        for asset in data.get("assets") or []:
            if isinstance(asset, dict) and str(asset.get("name", "")).lower().endswith(".zip"):
                download_url = str(asset.get("url") or asset.get("browser_download_url") or "")
                if download_url:
                    break
        if not download_url:
            download_url = str(data.get("zipball_url") or "")

        return cls(
            tag_name=str(data.get("tag_name") or ""),
            name=str(data.get("name") or ""),
            html_url=str(data.get("html_url") or ""),
            download_url=download_url,
            prerelease=bool(data.get("prerelease", False)),
            published_at=data.get("published_at") or None,
            body=str(data.get("body") or ""),
        )


class UpdateState(str, Enum):
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    ROLLBACK_AVAILABLE = "rollback_available"
    UNMANAGED = "unmanaged"
    ERROR = "error"


class UpdateStatus(BaseModel):
    """Derived update status for a package. Never persisted."""

    model_config = ConfigDict(frozen=True)

    state: UpdateState
    latest: str | None = None
    reason: str | None = None

    @classmethod
    def up_to_date(cls, latest: str | None = None) -> "UpdateStatus":
        return cls(state=UpdateState.UP_TO_DATE, latest=latest)

    @classmethod
    def update_available(cls, latest: str) -> "UpdateStatus":
        return cls(state=UpdateState.UPDATE_AVAILABLE, latest=latest)

    @classmethod
    def rollback_available(cls, latest: str) -> "UpdateStatus":
        return cls(state=UpdateState.ROLLBACK_AVAILABLE, latest=latest)

    @classmethod
    def unmanaged(cls) -> "UpdateStatus":
        return cls(state=UpdateState.UNMANAGED)

    @classmethod
    def error(cls, reason: str) -> "UpdateStatus":
        return cls(state=UpdateState.ERROR, reason=reason)


class PackageView(BaseModel):
    """Package row returned to the REST layer."""

    slug: str
    kind: PackageKind
    name: str
    repo: str
    installed_version: str
    latest: str | None = None
    status: UpdateState
    reason: str | None = None
    channel: ReleaseChannel
    app_id: str | None = None

    @classmethod
    def build(cls, package: Package, status: UpdateStatus) -> "PackageView":
        return cls(
            slug=package.slug,
            kind=package.kind,
            name=package.name,
            repo=package.repo_slug,
            installed_version=package.installed_version,
            latest=status.latest,
            status=status.state,
            reason=status.reason,
            channel=package.release_channel,
            app_id=package.app_id,
        )


class ReleaseNote(BaseModel):
    version: str
    notes: str = ""
    published_at: datetime | None = None
    prerelease: bool = False


class VersionRequest(BaseModel):
    version: str = Field(..., min_length=1, max_length=100)


class ChannelRequest(BaseModel):
    channel: ReleaseChannel
    kind: PackageKind | None = None
