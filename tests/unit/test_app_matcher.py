import pytest

from gh_updater.core.exceptions import ApiError
from gh_updater.schemas.apps import App, AppStatus
from gh_updater.schemas.packages import Package, PackageKind
from gh_updater.services.app_matcher import AppMatcher
from gh_updater.services.cache import CacheKeys
from gh_updater.services.github_client import Listing


class FakeRepositoryClient:
    def __init__(self, repositories: dict[str, list[str]], failing: set[str] | None = None):
        self.repositories = repositories
        self.failing = failing or set()
        self.calls: list[str] = []

    async def list_repositories(self, app_id: str) -> Listing[str]:
        self.calls.append(app_id)
        if app_id in self.failing:
            raise ApiError("boom", status_code=500)
        return Listing(items=list(self.repositories.get(app_id, [])))


def _package(repo: str, slug: str | None = None) -> Package:
    return Package(slug=slug or f"{repo.split('/')[1]}.php", kind=PackageKind.PLUGIN, name=repo, repo_slug=repo)


def _app(app_id: str, *, managed: list[str] | None = None, status: AppStatus = AppStatus.INSTALLED) -> App:
    return App(
        id=app_id,
        name=app_id,
        app_id=1,
        installation_id=2 if status == AppStatus.INSTALLED else 0,
        private_key="pem",
        status=status,
        managed_repositories=managed or [],
    )


@pytest.mark.asyncio
async def test_explicit_assignment_wins_over_discovery(cache, settings) -> None:
    client = FakeRepositoryClient({"auto": ["acme/widget"]})
    matcher = AppMatcher(client, cache, settings)

    [package] = await matcher.match(
        [_package("acme/widget")],
        [_app("auto"), _app("explicit", managed=["acme/widget"])],
    )

    assert package.app_id == "explicit"
    assert client.calls == []


@pytest.mark.asyncio
async def test_first_explicit_assignment_wins(cache, settings) -> None:
    matcher = AppMatcher(None, cache, settings)

    [package] = await matcher.match(
        [_package("acme/widget")],
        [_app("one", managed=["acme/widget"]), _app("two", managed=["acme/widget"])],
    )

    assert package.app_id == "one"


@pytest.mark.asyncio
async def test_repository_reachable_by_several_apps_goes_to_the_first_in_order(cache, settings) -> None:
    await cache.set(CacheKeys.repositories("first"), ["acme/widget", "acme/shared"], 3600)
    await cache.set(CacheKeys.repositories("second"), ["acme/shared", "acme/widget"], 3600)
    client = FakeRepositoryClient({})
    matcher = AppMatcher(client, cache, settings)

    packages = await matcher.match(
        [_package("acme/widget"), _package("acme/shared")],
        [_app("first"), _app("second")],
    )
    reversed_order = await matcher.match([_package("acme/widget")], [_app("second"), _app("first")])

    assert [p.app_id for p in packages] == ["first", "first"]
    assert reversed_order[0].app_id == "second"
    assert client.calls == []


@pytest.mark.asyncio
async def test_auto_discovery_uses_installed_apps_and_caches(cache, settings) -> None:
    client = FakeRepositoryClient({"a": ["acme/other"], "b": ["acme/widget"]})
    matcher = AppMatcher(client, cache, settings)
    apps = [_app("a"), _app("b"), _app("pending", status=AppStatus.PENDING)]

    first = await matcher.match([_package("acme/widget"), _package("acme/orphan")], apps)
    second = await matcher.match([_package("acme/widget")], apps)

    assert [p.app_id for p in first] == ["b", None]
    assert second[0].app_id == "b"
    assert client.calls == ["a", "b"]
    assert await cache.get(CacheKeys.repositories("b")) == ["acme/widget"]


@pytest.mark.asyncio
async def test_auto_discovery_skipped_above_app_limit(cache, settings) -> None:
    settings.auto_discovery_max_apps = 2
    client = FakeRepositoryClient({"a": ["acme/widget"]})
    matcher = AppMatcher(client, cache, settings)

    [package] = await matcher.match([_package("acme/widget")], [_app("a"), _app("b"), _app("c")])

    assert package.app_id is None
    assert client.calls == []


@pytest.mark.asyncio
async def test_listing_failure_is_not_cached(cache, settings) -> None:
    client = FakeRepositoryClient({"b": ["acme/widget"]}, failing={"a"})
    matcher = AppMatcher(client, cache, settings)

    [package] = await matcher.match([_package("acme/widget")], [_app("a"), _app("b")])

    assert package.app_id == "b"
    assert await cache.get(CacheKeys.repositories("a")) is None


@pytest.mark.asyncio
async def test_auto_discovery_can_be_disabled(cache, settings) -> None:
    client = FakeRepositoryClient({"a": ["acme/widget"]})
    matcher = AppMatcher(client, cache, settings)

    [package] = await matcher.match([_package("acme/widget")], [_app("a")], auto_discover=False)

    assert package.app_id is None
