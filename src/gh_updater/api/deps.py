"""Dependency wiring for the REST layer and background tasks.

One UpdaterContainer is built at startup and stored on ``app.state``;
services receive their collaborators through constructors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from gh_updater.config import Settings
from gh_updater.core.encryption import SecretCipher
from gh_updater.core.redis_service import RedisConfig, RedisService
from gh_updater.database import build_engine, build_session_factory
from gh_updater.host.base import HostPlatform
from gh_updater.host.static import StaticHost
from gh_updater.host.wordpress import WordPressHost
from gh_updater.schemas.packages import ReleaseChannel
from gh_updater.services.app_matcher import AppMatcher
from gh_updater.services.audit_log import AuditLog
from gh_updater.services.cache import CacheLayer, InMemoryCache, RedisCache
from gh_updater.services.credential_store import CredentialStore
from gh_updater.services.github_client import RepositoryClient, build_http_client
from gh_updater.services.operation_coordinator import PackageOperationCoordinator
from gh_updater.services.operation_locks import (
    LocalOperationLocks,
    OperationLockManager,
    RedisOperationLocks,
)
from gh_updater.services.package_discovery import PackageDiscovery
from gh_updater.services.package_service import PackageService
from gh_updater.services.package_settings import PackageSettingsStore
from gh_updater.services.release_resolver import ReleaseResolver
from gh_updater.services.token_provider import TokenProvider
from gh_updater.services.update_engine import UpdateDecisionEngine
from gh_updater.services.webhook_handler import WebhookEventChannel, WebhookEventHandler

logger = logging.getLogger(__name__)


def build_host(settings: Settings) -> HostPlatform:
    if settings.wordpress_root:
        return WordPressHost(settings.wordpress_root)
    logger.warning("WORDPRESS_ROOT not set; using an empty in-memory host")
    return StaticHost()


@dataclass
class UpdaterContainer:
    settings: Settings
    db_engine: AsyncEngine | None
    session_factory: async_sessionmaker[AsyncSession]
    redis: RedisService | None
    cache: CacheLayer
    locks: OperationLockManager
    store: CredentialStore
    package_settings: PackageSettingsStore
    host: HostPlatform
    http_client: httpx.AsyncClient
    tokens: TokenProvider
    client: RepositoryClient
    resolver: ReleaseResolver
    coordinator: PackageOperationCoordinator
    service: PackageService
    webhook_channel: WebhookEventChannel

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        host: HostPlatform | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: CacheLayer | None = None,
        locks: OperationLockManager | None = None,
    ) -> "UpdaterContainer":
        db_engine = None
        if session_factory is None:
            db_engine = build_engine(settings)
            session_factory = build_session_factory(db_engine)

        redis = None
        if cache is None or locks is None:
            if settings.cache_backend == "redis":
                redis = RedisService(RedisConfig(url=settings.redis_url))
                cache = cache or RedisCache(redis)
                locks = locks or RedisOperationLocks(redis)
            else:
                cache = cache or InMemoryCache()
                locks = locks or LocalOperationLocks()

        host = host or build_host(settings)
        channel = ReleaseChannel(settings.default_release_channel)
        store = CredentialStore(session_factory, SecretCipher(settings.encryption_key))
        package_settings = PackageSettingsStore(session_factory, channel)
        http_client = build_http_client(settings, transport)
        tokens = TokenProvider(store, cache, http_client, settings)
        client = RepositoryClient(tokens, cache, http_client, settings)
        resolver = ReleaseResolver(client, cache, settings)
        coordinator = PackageOperationCoordinator(resolver, client, host, locks, settings, AuditLog())
        service = PackageService(
            settings=settings,
            store=store,
            cache=cache,
            discovery=PackageDiscovery(host, package_settings, channel),
            matcher=AppMatcher(client, cache, settings),
            resolver=resolver,
            engine=UpdateDecisionEngine(resolver),
            coordinator=coordinator,
            package_settings=package_settings,
            tokens=tokens,
            client=client,
        )

        return cls(
            settings=settings,
            db_engine=db_engine,
            session_factory=session_factory,
            redis=redis,
            cache=cache,
            locks=locks,
            store=store,
            package_settings=package_settings,
            host=host,
            http_client=http_client,
            tokens=tokens,
            client=client,
            resolver=resolver,
            coordinator=coordinator,
            service=service,
            webhook_channel=WebhookEventChannel(WebhookEventHandler(store, cache)),
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()
        if self.redis is not None:
            await self.redis.disconnect()
        if self.db_engine is not None:
            await self.db_engine.dispose()


def get_container(request: Request) -> UpdaterContainer:
    return request.app.state.container


def get_package_service(request: Request) -> PackageService:
    return get_container(request).service


def get_webhook_channel(request: Request) -> WebhookEventChannel:
    return get_container(request).webhook_channel
