"""Test configuration and fixtures."""

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gh_updater.config import Settings
from gh_updater.core.encryption import SecretCipher
from gh_updater.database import build_engine, build_session_factory, create_schema
from gh_updater.schemas.apps import App, AppStatus
from gh_updater.services.cache import InMemoryCache
from gh_updater.services.credential_store import CredentialStore

# In-memory SQLite for tests (requires aiosqlite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
GITHUB_API = "https://api.github.test"


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        encryption_key="test-encryption-key",
        github_api_base_url=GITHUB_API,
        cache_backend="memory",
        github_request_timeout_seconds=2.0,
        sync_deadline_seconds=5.0,
        operation_deadline_seconds=5.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryCache:
    return InMemoryCache(clock=clock)


@pytest_asyncio.fixture
async def session_factory(settings: Settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = build_engine(settings)
    await create_schema(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> CredentialStore:
    return CredentialStore(session_factory, SecretCipher(settings.encryption_key))


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def make_app(private_key_pem: str) -> Callable[..., App]:
    def _make(**overrides: Any) -> App:
        data: dict[str, Any] = {
            "name": "Acme Updates",
            "slug": "acme-updates",
            "app_id": 101,
            "installation_id": 202,
            "private_key": private_key_pem,
            "webhook_secret": "hook-secret",
            "status": AppStatus.INSTALLED,
        }
        data.update(overrides)
        return App(**data)

    return _make


def _github_release(
    tag: str,
    *,
    prerelease: bool = False,
    published_at: str = "2026-01-01T00:00:00Z",
    body: str = "",
    draft: bool = False,
    assets: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """GitHub REST release object with the fields the client reads."""
    return {
        "tag_name": tag,
        "name": tag,
        "html_url": f"https://github.com/acme/widget/releases/tag/{tag}",
        "zipball_url": f"{GITHUB_API}/repos/acme/widget/zipball/{tag}",
        "prerelease": prerelease,
        "draft": draft,
        "published_at": published_at,
        "body": body,
        "assets": assets or [],
    }


def _token_response(
    token: str = "ghs_installation_token_1234",
    expires_at: str = "2099-01-01T00:00:00Z",
) -> httpx.Response:
    return httpx.Response(201, json={"token": token, "expires_at": expires_at})


@pytest.fixture
def github_release() -> Callable[..., dict[str, Any]]:
    return _github_release


@pytest.fixture
def token_response() -> Callable[..., httpx.Response]:
    return _token_response
