"""Package and app operations exposed to the REST layer and background sync."""

from __future__ import annotations

import asyncio
import logging

from gh_updater.config import Settings
from gh_updater.core.exceptions import (
    ApiError,
    AppNotFoundError,
    AuthError,
    OpError,
    OpErrorKind,
    PackageNotFoundError,
    RateLimitError,
    UpdaterError,
)
from gh_updater.ops.deadlines import deadline
from gh_updater.ops.retry_policy import AUTH_FAILURE_STATUSES
from gh_updater.schemas.apps import App, AppCreate, AppHealthReport, AppStatus
from gh_updater.schemas.packages import (
    Package,
    PackageKind,
    PackageView,
    ReleaseChannel,
    ReleaseNote,
)
from gh_updater.services.app_matcher import AppMatcher
from gh_updater.services.audit_log import OperationRecord
from gh_updater.services.cache import CacheKeys, CacheLayer
from gh_updater.services.credential_store import CredentialStore
from gh_updater.services.github_client import RepositoryClient
from gh_updater.services.operation_coordinator import PackageOperationCoordinator
from gh_updater.services.package_discovery import PackageDiscovery
from gh_updater.services.package_settings import PackageSettingsStore
from gh_updater.services.release_resolver import ReleaseResolver
from gh_updater.services.token_provider import TokenProvider
from gh_updater.services.update_engine import UpdateDecisionEngine

logger = logging.getLogger(__name__)


def _is_auth_failure(error: Exception) -> bool:
    if isinstance(error, AuthError):
        return True
    if isinstance(error, RateLimitError):
        return False
    return isinstance(error, ApiError) and error.status_code in AUTH_FAILURE_STATUSES


class PackageService:
    def __init__(
        self,
        *,
        settings: Settings,
        store: CredentialStore,
        cache: CacheLayer,
        discovery: PackageDiscovery,
        matcher: AppMatcher,
        resolver: ReleaseResolver,
        engine: UpdateDecisionEngine,
        coordinator: PackageOperationCoordinator,
        package_settings: PackageSettingsStore,
        tokens: TokenProvider,
        client: RepositoryClient,
    ):
        self.settings = settings
        self.store = store
        self.cache = cache
        self.discovery = discovery
        self.matcher = matcher
        self.resolver = resolver
        self.engine = engine
        self.coordinator = coordinator
        self.package_settings = package_settings
        self.tokens = tokens
        self.client = client

    # =========================================
    # PACKAGES
    # =========================================

    async def packages(self) -> list[Package]:
        """Discovered packages annotated with their managing app."""
        discovered = await self.discovery.discover()
        return await self.matcher.match(discovered, await self.store.all())

    async def list_packages(self) -> list[PackageView]:
        """
        Discovery, matching and resolution in one pass.

        Raises:
            OperationTimeoutError: If the pass exceeds the sync deadline
        """
        async with deadline("package status pass", self.settings.sync_deadline_seconds):
            packages = await self.packages()
            statuses = await asyncio.gather(*(self.engine.decide(p) for p in packages))
        return [PackageView.build(p, s) for p, s in zip(packages, statuses)]

    async def sync(self) -> list[PackageView]:
        """Drop cached release and repository lists, then rebuild the package list."""
        apps = await self.store.all()
        for app in apps:
            await self.cache.invalidate(CacheKeys.repositories(app.id))
        invalidated = await self.cache.invalidate_prefix(CacheKeys.RELEASES)
        logger.info("Package sync started", extra={"apps": len(apps), "invalidated": invalidated})

        views = await self.list_packages()
        logger.info(
            "Package sync finished",
            extra={
                "packages": len(views),
                "updates": sum(1 for v in views if v.status.value == "update_available"),
            },
        )
        return views

    async def find_package(self, repo_slug: str, kind: PackageKind | None = None) -> Package:
        for package in await self.packages():
            if package.repo_slug == repo_slug and (kind is None or package.kind == kind):
                return package
        raise PackageNotFoundError(repo_slug)

    async def install(self, repo_slug: str, version: str) -> OperationRecord:
        package = await self.find_package(repo_slug)
        return await self.coordinator.install(package, version)

    async def rollback(self, repo_slug: str, version: str) -> OperationRecord:
        package = await self.find_package(repo_slug)
        return await self.coordinator.rollback(package, version)

    async def set_channel(
        self,
        repo_slug: str,
        channel: ReleaseChannel,
        kind: PackageKind | None = None,
    ) -> Package:
        package = await self.find_package(repo_slug, kind)
        await self.package_settings.set_channel(package.repo_slug, package.kind, channel)
        return package.model_copy(update={"release_channel": channel})

    async def release_notes(self, repo_slug: str) -> list[ReleaseNote]:
        package = await self.find_package(repo_slug)
        if package.app_id is None:
            raise OpError(OpErrorKind.UNMANAGED, f"{repo_slug} is not managed by any GitHub app")
        return await self.resolver.release_notes(package.repo_slug, package.app_id)

    def operations(self, limit: int = 50, repo_slug: str | None = None) -> list[OperationRecord]:
        return self.coordinator.audit.recent(limit=limit, repo_slug=repo_slug)

    # =========================================
    # APPS
    # =========================================

    async def list_apps(self) -> list[App]:
        return await self.store.all()

    async def get_app(self, app_id: str) -> App:
        app = await self.store.find(app_id)
        if app is None:
            raise AppNotFoundError(app_id)
        return app

    async def create_app(self, data: AppCreate) -> App:
        return await self.store.save(data.to_app())

    async def assign(self, app_id: str, repo_slug: str) -> App:
        """Explicitly assign a repository to an app. Assigning twice is a no-op."""
        app = await self.get_app(app_id)
        if app.manages(repo_slug):
            return app

        saved = await self.store.save(
            app.model_copy(update={"managed_repositories": [*app.managed_repositories, repo_slug]})
        )
        logger.info("Repository assigned to app", extra={"app": app_id, "repo": repo_slug})
        return saved

    async def disconnect(self, app_id: str) -> None:
        app = await self.get_app(app_id)
        discovered = await self.cache.get(CacheKeys.repositories(app_id)) or []
        await self.store.delete(app_id)

        repos = {*app.managed_repositories, *discovered}
        for key in (
            CacheKeys.token(app_id),
            CacheKeys.repositories(app_id),
            CacheKeys.backoff(app_id),
            *(CacheKeys.releases(repo) for repo in sorted(repos)),
        ):
            await self.cache.invalidate(key)
        logger.info("App disconnected", extra={"app": app_id})

    async def check_app(self, app_id: str) -> AppHealthReport:
        """Exchange a fresh token and list repositories to prove the connection works."""
        app = await self.get_app(app_id)
        if not app.has_credentials:
            return AppHealthReport(
                app_id=app_id,
                status="unconfigured",
                message="App id, installation id and private key are required",
            )

        await self.tokens.invalidate(app_id)
        try:
            listing = await self.client.list_repositories(app_id)
        except (AuthError, ApiError) as e:
            if not _is_auth_failure(e):
                return AppHealthReport(app_id=app_id, status="degraded", message=str(e))
            await self.store.save(app.model_copy(update={"status": AppStatus.ERROR}))
            return AppHealthReport(app_id=app_id, status="error", message=str(e))
        except (UpdaterError, TimeoutError) as e:
            return AppHealthReport(app_id=app_id, status="degraded", message=str(e))

        await self.cache.set(
            CacheKeys.repositories(app_id),
            listing.items,
            self.settings.repository_cache_ttl_seconds,
        )
        if app.status != AppStatus.INSTALLED:
            await self.store.save(app.model_copy(update={"status": AppStatus.INSTALLED}))
        return AppHealthReport(
            app_id=app_id,
            status="healthy",
            message="Connected to GitHub",
            repository_count=len(listing.items),
        )
