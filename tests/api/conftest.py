"""Fixtures for REST layer tests.

Routers are exercised through FastAPI's TestClient with the service
dependency overridden; the application lifespan is not started.
"""

from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from gh_updater.api.deps import get_package_service, get_webhook_channel
from gh_updater.main import create_app


class RecordingChannel:
    def __init__(self) -> None:
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)


@pytest.fixture
def api_app() -> FastAPI:
    return create_app()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def client_for(api_app: FastAPI, channel: RecordingChannel):
    def _client(service) -> TestClient:
        api_app.dependency_overrides[get_package_service] = lambda: service
        api_app.dependency_overrides[get_webhook_channel] = lambda: channel
        return TestClient(api_app)

    yield _client
    api_app.dependency_overrides.clear()
