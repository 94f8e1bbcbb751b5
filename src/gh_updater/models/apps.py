"""SQLAlchemy models for GitHub App connections and per-package settings."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        list[str]: JSON,
    }


class GitHubAppRecord(Base):
    """Persisted GitHub App connection.

    Secret columns hold Fernet tokens, never plaintext. Saves replace the
    whole row, so concurrent admin edits are last-writer-wins.
    """

    __tablename__ = "github_apps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255), default="")
    app_id: Mapped[int] = mapped_column(BigInteger, default=0)
    installation_id: Mapped[int] = mapped_column(BigInteger, default=0)
    private_key_encrypted: Mapped[str] = mapped_column(Text, default="")
    webhook_secret_encrypted: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(32), default="pending")
    managed_repositories: Mapped[list[str]] = mapped_column(default=list)
    position: Mapped[int] = mapped_column(BigInteger, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<GitHubAppRecord(id={self.id}, name={self.name}, status={self.status})>"


class PackageSettingRecord(Base):
    """Release channel chosen for a repository/kind pair."""

    __tablename__ = "package_settings"

    repo_slug: Mapped[str] = mapped_column(String(255), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    channel: Mapped[str] = mapped_column(String(16), default="stable")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
