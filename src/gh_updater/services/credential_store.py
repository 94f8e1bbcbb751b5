"""Persisted GitHub App credentials, encrypted at rest."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gh_updater.core.encryption import DecryptionError, SecretCipher
from gh_updater.database import session_scope
from gh_updater.models.apps import GitHubAppRecord
from gh_updater.schemas.apps import App, AppStatus

logger = logging.getLogger(__name__)


class CredentialStore:
    """CRUD over GitHub App connections.

    Secrets are encrypted before they reach the database. A record whose
    secrets cannot be decrypted (rotated or corrupted key) is returned with
    empty secrets and ``pending`` status so an admin can re-enter them.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: SecretCipher,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher

    async def save(self, app: App) -> App:
        app_id = app.id or str(uuid4())
        now = datetime.now(UTC)

        async with session_scope(self._session_factory) as session:
            record = await session.get(GitHubAppRecord, app_id)
            if record is None:
                position = await session.scalar(
                    select(func.coalesce(func.max(GitHubAppRecord.position), 0))
                )
                record = GitHubAppRecord(
                    id=app_id,
                    created_at=app.created_at or now,
                    position=int(position or 0) + 1,
                )
                session.add(record)

            record.name = app.name
            record.slug = app.slug
            record.app_id = app.app_id
            record.installation_id = app.installation_id
            record.private_key_encrypted = self._cipher.encrypt(app.private_key)
            record.webhook_secret_encrypted = self._cipher.encrypt(app.webhook_secret)
            record.status = app.status.value
            record.managed_repositories = list(app.managed_repositories)
            record.updated_at = now
            created_at = record.created_at

        logger.info(
            "Saved GitHub app",
            extra={"app": app_id, "status": app.status.value},
        )
        return app.model_copy(update={"id": app_id, "created_at": created_at, "updated_at": now})

    async def find(self, app_id: str) -> App | None:
        async with session_scope(self._session_factory) as session:
            record = await session.get(GitHubAppRecord, app_id)
            if record is None:
                return None
            return self._to_app(record)

    async def all(self) -> list[App]:
        """All apps in configuration order."""
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(GitHubAppRecord).order_by(GitHubAppRecord.position)
            )
            return [self._to_app(record) for record in result.scalars().all()]

    async def delete(self, app_id: str) -> bool:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                delete(GitHubAppRecord).where(GitHubAppRecord.id == app_id)
            )
            deleted = bool(result.rowcount)

        if deleted:
            logger.info("Deleted GitHub app", extra={"app": app_id})
        return deleted

    def _to_app(self, record: GitHubAppRecord) -> App:
        try:
            private_key = self._cipher.decrypt(record.private_key_encrypted)
            webhook_secret = self._cipher.decrypt(record.webhook_secret_encrypted)
        except DecryptionError:
            logger.warning(
                "App secrets unreadable; resetting to pending",
                extra={"app": record.id},
            )
            return self._unreadable(record)

        try:
            return App(
                id=record.id,
                name=record.name,
                slug=record.slug,
                app_id=record.app_id,
                installation_id=record.installation_id,
                private_key=private_key,
                webhook_secret=webhook_secret,
                status=AppStatus(record.status),
                managed_repositories=list(record.managed_repositories or []),
                created_at=record.created_at,
                updated_at=record.updated_at,
            )
        except (ValidationError, ValueError) as exc:
            logger.warning(
                "Stored app record is inconsistent; resetting to pending",
                extra={"app": record.id, "error": str(exc)},
            )
            return self._unreadable(record)

    def _unreadable(self, record: GitHubAppRecord) -> App:
        repositories = []
        for repo in record.managed_repositories or []:
            if isinstance(repo, str):
                repositories.append(repo)
        try:
            return App(
                id=record.id,
                name=record.name or record.id,
                slug=record.slug,
                app_id=record.app_id,
                installation_id=record.installation_id,
                status=AppStatus.PENDING,
                managed_repositories=repositories,
                created_at=record.created_at,
                updated_at=record.updated_at,
            )
        except ValidationError:
            return App(id=record.id, name=record.name or record.id, status=AppStatus.PENDING)
