from contextlib import asynccontextmanager
from types import SimpleNamespace

from fastapi.testclient import TestClient

from gh_updater.api.deps import get_container
from gh_updater.config import Settings


class _Result:
    def scalar(self):
        return 1


class _Session:
    def __init__(self, fail: bool):
        self.fail = fail

    async def execute(self, statement):
        if self.fail:
            raise ConnectionError("database unreachable")
        return _Result()


def _container(fail: bool = False) -> SimpleNamespace:
    @asynccontextmanager
    async def session_factory():
        yield _Session(fail)

    return SimpleNamespace(session_factory=session_factory, settings=Settings(cache_backend="memory"), redis=None)


def test_healthy(api_app) -> None:
    api_app.dependency_overrides[get_container] = lambda: _container()

    response = TestClient(api_app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"] == "connected"
    assert response.json()["cache"] == "memory"


def test_database_failure_is_unhealthy(api_app) -> None:
    api_app.dependency_overrides[get_container] = lambda: _container(fail=True)

    response = TestClient(api_app).get("/health")

    body = response.json()
    assert body["status"] == "unhealthy"
    assert "database unreachable" in body["details"]["database_error"]
