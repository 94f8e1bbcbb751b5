"""Schemas for GitHub App connections."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from gh_updater.schemas.packages import normalize_repo_slug


class AppStatus(str, Enum):
    """Lifecycle state of a GitHub App connection."""

    PENDING = "pending"
    APP_CREATED = "app_created"
    INSTALLED = "installed"
    ERROR = "error"


UNINSTALLED_STATUSES = frozenset({AppStatus.PENDING, AppStatus.APP_CREATED})


class App(BaseModel):
    """One configured GitHub App connection.

    ``private_key`` and ``webhook_secret`` hold plaintext here; the
    CredentialStore encrypts them before they reach the database.
    """

    id: str = ""
    name: str = Field(..., min_length=1)
    slug: str = ""
    app_id: int = 0
    installation_id: int = 0
    private_key: str = ""
    webhook_secret: str = ""
    status: AppStatus = AppStatus.PENDING
    managed_repositories: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("managed_repositories")
    @classmethod
    def _normalize_repositories(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for repo in value:
            normalized = normalize_repo_slug(repo)
            if normalized is None:
                raise ValueError(f"Invalid repository slug: {repo!r}")
            if normalized not in seen:
                seen.append(normalized)
        return seen

    @model_validator(mode="after")
    def _check_installation_state(self) -> "App":
        if self.installation_id == 0 and self.status not in UNINSTALLED_STATUSES:
            raise ValueError(
                f"status {self.status.value!r} requires an installation id"
            )
        return self

    @property
    def has_credentials(self) -> bool:
        return bool(self.app_id and self.private_key and self.installation_id)

    def manages(self, repo_slug: str) -> bool:
        return repo_slug in self.managed_repositories


class AppSummary(BaseModel):
    """App view without secret material."""

    id: str
    name: str
    slug: str
    app_id: int
    installation_id: int
    status: AppStatus
    managed_repositories: list[str]
    has_private_key: bool
    has_webhook_secret: bool
    updated_at: datetime | None = None

    @classmethod
    def from_app(cls, app: App) -> "AppSummary":
        return cls(
            id=app.id,
            name=app.name,
            slug=app.slug,
            app_id=app.app_id,
            installation_id=app.installation_id,
            status=app.status,
            managed_repositories=list(app.managed_repositories),
            has_private_key=bool(app.private_key),
            has_webhook_secret=bool(app.webhook_secret),
            updated_at=app.updated_at,
        )


class AppHealthReport(BaseModel):
    app_id: str
    status: str
    message: str
    repository_count: int | None = None


class AppCreate(BaseModel):
    """Credentials entered by an admin for a new app connection."""

    name: str = Field(..., min_length=1, max_length=255)
    slug: str = ""
    app_id: int = Field(0, ge=0)
    installation_id: int = Field(0, ge=0)
    private_key: str = ""
    webhook_secret: str = ""
    managed_repositories: list[str] = Field(default_factory=list)

    def to_app(self) -> App:
        if self.installation_id:
            status = AppStatus.INSTALLED
        elif self.app_id:
            status = AppStatus.APP_CREATED
        else:
            status = AppStatus.PENDING
        return App(
            name=self.name,
            slug=self.slug,
            app_id=self.app_id,
            installation_id=self.installation_id,
            private_key=self.private_key,
            webhook_secret=self.webhook_secret,
            status=status,
            managed_repositories=self.managed_repositories,
        )


class AssignRequest(BaseModel):
    repo: str = Field(..., min_length=3)

    @field_validator("repo")
    @classmethod
    def _validate_repo(cls, value: str) -> str:
        normalized = normalize_repo_slug(value)
        if normalized is None:
            raise ValueError(f"Invalid repository slug: {value!r}")
        return normalized
