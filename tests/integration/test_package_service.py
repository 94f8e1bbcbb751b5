"""End-to-end package flows through a real container and a mocked GitHub API."""

import httpx
import pytest
import pytest_asyncio

from gh_updater.api.deps import UpdaterContainer
from gh_updater.core.exceptions import AppNotFoundError, OpError, OpErrorKind, PackageNotFoundError
from gh_updater.host.static import StaticHost
from gh_updater.schemas.apps import AppCreate, AppStatus
from gh_updater.schemas.packages import InstalledPackage, PackageKind, ReleaseChannel, UpdateState
from gh_updater.schemas.webhooks import EventKind, WebhookEvent
from gh_updater.services.cache import CacheKeys


class FakeGitHub:
    """Routes the handful of endpoints the updater calls."""

    def __init__(self, github_release, token_response):
        self.github_release = github_release
        self.token_response = token_response
        self.repositories = ["acme/widget", "acme/theme"]
        self.releases = {
            "acme/widget": [
                github_release("v1.2.0-beta.1", prerelease=True, published_at="2026-03-01T00:00:00Z"),
                github_release("v1.1.0", published_at="2026-02-01T00:00:00Z"),
                github_release("v1.0.0", published_at="2026-01-01T00:00:00Z"),
            ],
            "acme/theme": [],
        }
        self.reject_tokens = False
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(f"{request.method} {path}")
        if path.endswith("/access_tokens"):
            if self.reject_tokens:
                return httpx.Response(401, json={"message": "A JSON web token could not be decoded"})
            return self.token_response()
        if path == "/installation/repositories":
            return httpx.Response(200, json={"repositories": [{"full_name": r} for r in self.repositories]})
        if path.startswith("/repos/") and path.endswith("/releases"):
            repo = path[len("/repos/"):-len("/releases")]
            return httpx.Response(200, json=self.releases.get(repo, []))
        if "/zipball/" in path:
            return httpx.Response(200, content=b"PK\x03\x04" + path.encode())
        return httpx.Response(404)


@pytest.fixture
def github(github_release, token_response) -> FakeGitHub:
    return FakeGitHub(github_release, token_response)


@pytest.fixture
def host() -> StaticHost:
    return StaticHost(
        plugins=[
            InstalledPackage(slug="widget/widget.php", name="Widget", version="1.0.0", update_uri="acme/widget"),
            InstalledPackage(slug="hello.php", name="Hello Dolly", version="1.7.2"),
        ],
        themes=[
            InstalledPackage(slug="acme-theme", name="Acme Theme", version="0.9.0", update_uri="acme/theme"),
            InstalledPackage(slug="other", name="Other", version="2.0.0", update_uri="someone/else"),
        ],
    )


@pytest_asyncio.fixture
async def container(settings, session_factory, cache, host, github):
    built = UpdaterContainer.build(
        settings,
        host=host,
        session_factory=session_factory,
        transport=httpx.MockTransport(github),
        cache=cache,
    )
    yield built
    await built.aclose()


@pytest_asyncio.fixture
async def app(container, make_app):
    return await container.store.save(make_app())


def _by_repo(views):
    return {view.repo: view for view in views}


@pytest.mark.asyncio
async def test_list_packages_reports_status_per_package(container, app) -> None:
    views = _by_repo(await container.service.list_packages())

    assert set(views) == {"acme/widget", "acme/theme", "someone/else"}
    assert views["acme/widget"].status == UpdateState.UPDATE_AVAILABLE
    assert views["acme/widget"].latest == "v1.1.0"
    assert views["acme/widget"].app_id == app.id
    assert views["acme/theme"].status == UpdateState.UP_TO_DATE
    assert views["someone/else"].status == UpdateState.UNMANAGED


@pytest.mark.asyncio
async def test_repeated_listing_is_served_from_cache(container, app, github) -> None:
    await container.service.list_packages()
    first = len(github.requests)

    await container.service.list_packages()

    assert len(github.requests) == first


@pytest.mark.asyncio
async def test_sync_refetches_releases(container, app, github) -> None:
    await container.service.list_packages()
    github.releases["acme/widget"].insert(0, github.github_release("v1.3.0", published_at="2026-04-01T00:00:00Z"))

    views = _by_repo(await container.service.sync())

    assert views["acme/widget"].latest == "v1.3.0"


@pytest.mark.asyncio
async def test_beta_channel_follows_prereleases(container, app) -> None:
    package = await container.service.set_channel("acme/widget", ReleaseChannel.BETA)
    assert package.release_channel == ReleaseChannel.BETA

    views = _by_repo(await container.service.list_packages())

    assert views["acme/widget"].channel == ReleaseChannel.BETA
    assert views["acme/widget"].latest == "v1.2.0-beta.1"


@pytest.mark.asyncio
async def test_install_updates_host_and_status(container, app, host) -> None:
    record = await container.service.install("acme/widget", "v1.1.0")

    assert record.state.value == "done"
    assert [(call.kind, call.slug) for call in host.installs] == [(PackageKind.PLUGIN, "widget/widget.php")]
    assert await container.cache.get(CacheKeys.releases("acme/widget")) is None
    assert container.service.operations(repo_slug="acme/widget") == [record]


@pytest.mark.asyncio
async def test_install_unknown_version_and_unknown_package(container, app) -> None:
    with pytest.raises(OpError) as exc:
        await container.service.install("acme/widget", "v9.0.0")
    assert exc.value.kind == OpErrorKind.VERSION_NOT_FOUND

    with pytest.raises(PackageNotFoundError):
        await container.service.install("acme/missing", "v1.0.0")


@pytest.mark.asyncio
async def test_unmanaged_package_cannot_be_installed(container, app) -> None:
    with pytest.raises(OpError) as exc:
        await container.service.install("someone/else", "v1.0.0")

    assert exc.value.kind == OpErrorKind.UNMANAGED


@pytest.mark.asyncio
async def test_token_rejection_reports_error_status(container, app, github) -> None:
    github.reject_tokens = True
    await container.service.assign(app.id, "acme/widget")

    views = _by_repo(await container.service.list_packages())

    assert views["acme/widget"].status == UpdateState.ERROR
    assert views["acme/widget"].reason


@pytest.mark.asyncio
async def test_check_app_healthy_and_rejected(container, app, github) -> None:
    report = await container.service.check_app(app.id)
    assert report.status == "healthy"
    assert report.repository_count == 2

    github.reject_tokens = True
    report = await container.service.check_app(app.id)
    assert report.status == "error"
    assert (await container.store.find(app.id)).status == AppStatus.ERROR


@pytest.mark.asyncio
async def test_check_app_without_credentials(container) -> None:
    app = await container.service.create_app(AppCreate(name="Draft"))

    report = await container.service.check_app(app.id)

    assert report.status == "unconfigured"


@pytest.mark.asyncio
async def test_disconnect_purges_caches_and_unlinks_packages(container, app) -> None:
    await container.service.assign(app.id, "acme/widget")
    await container.service.list_packages()

    await container.service.disconnect(app.id)

    assert await container.cache.get(CacheKeys.repositories(app.id)) is None
    assert await container.cache.get(CacheKeys.releases("acme/widget")) is None
    views = _by_repo(await container.service.list_packages())
    assert views["acme/widget"].status == UpdateState.UNMANAGED
    with pytest.raises(AppNotFoundError):
        await container.service.get_app(app.id)


@pytest.mark.asyncio
async def test_disconnect_purges_releases_of_auto_discovered_repositories(container, app) -> None:
    await container.service.list_packages()
    assert set(await container.cache.get(CacheKeys.repositories(app.id))) == {"acme/widget", "acme/theme"}
    assert await container.cache.get(CacheKeys.releases("acme/widget")) is not None

    await container.service.disconnect(app.id)

    assert await container.cache.get(CacheKeys.releases("acme/widget")) is None
    assert await container.cache.get(CacheKeys.releases("acme/theme")) is None


@pytest.mark.asyncio
async def test_release_webhook_invalidates_through_channel(container, app) -> None:
    await container.service.list_packages()
    assert await container.cache.get(CacheKeys.releases("acme/widget")) is not None

    await container.webhook_channel.publish(
        WebhookEvent(kind=EventKind.RELEASE_PUBLISHED, app_id=app.id, repo="acme/widget")
    )
    assert await container.webhook_channel.drain() == 1

    assert await container.cache.get(CacheKeys.releases("acme/widget")) is None


@pytest.mark.asyncio
async def test_release_notes(container, app) -> None:
    notes = await container.service.release_notes("acme/widget")

    assert [note.version for note in notes] == ["v1.2.0-beta.1", "v1.1.0", "v1.0.0"]
