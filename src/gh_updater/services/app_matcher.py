"""Assignment of discovered packages to the GitHub App that manages them."""

from __future__ import annotations

import logging

from gh_updater.config import Settings
from gh_updater.core.exceptions import UpdaterError
from gh_updater.schemas.apps import App, AppStatus
from gh_updater.schemas.packages import Package
from gh_updater.services.cache import CacheKeys, CacheLayer
from gh_updater.services.github_client import RepositoryClient

logger = logging.getLogger(__name__)


class AppMatcher:
    """
    Annotates packages with the id of their managing app.

    An explicit assignment (the app's managed repositories) always wins.
    Unassigned packages fall back to the repository lists of installed
    apps, which are cached per app and skipped entirely when too many apps
    are configured. Among several claims the first app in configuration
    order wins.
    """

    def __init__(
        self,
        client: RepositoryClient | None,
        cache: CacheLayer,
        settings: Settings,
    ):
        self.client = client
        self.cache = cache
        self.settings = settings

    async def match(
        self,
        packages: list[Package],
        apps: list[App],
        *,
        auto_discover: bool = True,
    ) -> list[Package]:
        explicit: dict[str, str] = {}
        for app in apps:
            for repo in app.managed_repositories:
                if repo in explicit:
                    if explicit[repo] != app.id:
                        logger.warning(
                            "Repository explicitly assigned to several apps; using the first",
                            extra={"repo": repo, "app": explicit[repo], "ignored_app": app.id},
                        )
                    continue
                explicit[repo] = app.id

        unassigned = {p.repo_slug for p in packages if p.repo_slug not in explicit}
        discovered: dict[str, str] = {}
        if unassigned and auto_discover:
            discovered = await self._discover(unassigned, apps)

        matched = []
        for package in packages:
            app_id = explicit.get(package.repo_slug) or discovered.get(package.repo_slug)
            matched.append(package.model_copy(update={"app_id": app_id}))
        return matched

    async def _discover(self, repos: set[str], apps: list[App]) -> dict[str, str]:
        if self.client is None:
            return {}

        candidates = [app for app in apps if app.status == AppStatus.INSTALLED and app.has_credentials]
        if not candidates:
            return {}
        if len(apps) > self.settings.auto_discovery_max_apps:
            logger.info(
                "Skipping repository auto-discovery; too many apps configured",
                extra={"apps": len(apps), "limit": self.settings.auto_discovery_max_apps},
            )
            return {}

        discovered: dict[str, str] = {}
        for app in candidates:
            accessible = await self.accessible_repositories(app.id)
            for repo in repos & accessible:
                if repo in discovered:
                    logger.warning(
                        "Repository accessible to several apps; using the first",
                        extra={"repo": repo, "app": discovered[repo], "ignored_app": app.id},
                    )
                    continue
                discovered[repo] = app.id
        return discovered

    async def accessible_repositories(self, app_id: str) -> set[str]:
        """Repositories the app's installation can see. Failures yield an empty set."""
        key = CacheKeys.repositories(app_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return set(cached)

        try:
            listing = await self.client.list_repositories(app_id)
        except (UpdaterError, TimeoutError) as e:
            logger.warning(
                "Could not list repositories for app",
                extra={"app": app_id, "error": str(e)},
            )
            return set()

        await self.cache.set(key, listing.items, self.settings.repository_cache_ttl_seconds)
        return set(listing.items)
