"""Per-package release channel preferences."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gh_updater.database import session_scope
from gh_updater.models.apps import PackageSettingRecord
from gh_updater.schemas.packages import PackageKind, ReleaseChannel

logger = logging.getLogger(__name__)


class PackageSettingsStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        default_channel: ReleaseChannel = ReleaseChannel.STABLE,
    ) -> None:
        self._session_factory = session_factory
        self.default_channel = default_channel

    async def channels(self) -> dict[tuple[str, PackageKind], ReleaseChannel]:
        """All stored channels keyed by (repo_slug, kind)."""
        async with session_scope(self._session_factory) as session:
            result = await session.execute(select(PackageSettingRecord))
            channels: dict[tuple[str, PackageKind], ReleaseChannel] = {}
            for record in result.scalars().all():
                try:
                    channels[(record.repo_slug, PackageKind(record.kind))] = ReleaseChannel(record.channel)
                except ValueError:
                    logger.warning(
                        "Ignoring unknown stored release channel",
                        extra={"repo": record.repo_slug, "channel": record.channel},
                    )
            return channels

    async def set_channel(self, repo_slug: str, kind: PackageKind, channel: ReleaseChannel) -> None:
        async with session_scope(self._session_factory) as session:
            record = await session.get(PackageSettingRecord, (repo_slug, kind.value))
            if record is None:
                record = PackageSettingRecord(repo_slug=repo_slug, kind=kind.value)
                session.add(record)
            record.channel = channel.value
            record.updated_at = datetime.now(UTC)

        logger.info(
            "Release channel updated",
            extra={"repo": repo_slug, "kind": kind.value, "channel": channel.value},
        )
