from __future__ import annotations

import pytest
from sqlalchemy import select

from gh_updater.core.encryption import SecretCipher
from gh_updater.database import session_scope
from gh_updater.models.apps import GitHubAppRecord
from gh_updater.schemas.apps import App, AppStatus
from gh_updater.services.credential_store import CredentialStore


@pytest.mark.asyncio
async def test_save_then_find_round_trips_secrets(store: CredentialStore, make_app, private_key_pem: str) -> None:
    saved = await store.save(make_app())

    assert saved.id
    assert saved.updated_at is not None

    found = await store.find(saved.id)
    assert found is not None
    assert found.private_key == private_key_pem
    assert found.webhook_secret == "hook-secret"
    assert found.status == AppStatus.INSTALLED


@pytest.mark.asyncio
async def test_secrets_are_encrypted_at_rest(store: CredentialStore, session_factory, make_app) -> None:
    saved = await store.save(make_app())

    async with session_scope(session_factory) as session:
        record = await session.get(GitHubAppRecord, saved.id)
        assert record is not None
        assert "PRIVATE KEY" not in record.private_key_encrypted
        assert record.webhook_secret_encrypted != "hook-secret"


@pytest.mark.asyncio
async def test_unreadable_secrets_reset_to_pending(session_factory, make_app) -> None:
    original = CredentialStore(session_factory, SecretCipher("key-one"))
    saved = await original.save(make_app(managed_repositories=["acme/widget"]))

    rotated = CredentialStore(session_factory, SecretCipher("key-two"))
    found = await rotated.find(saved.id)

    assert found is not None
    assert found.status == AppStatus.PENDING
    assert found.private_key == ""
    assert found.webhook_secret == ""
    assert found.managed_repositories == ["acme/widget"]


@pytest.mark.asyncio
async def test_all_returns_apps_in_configuration_order(store: CredentialStore, make_app) -> None:
    first = await store.save(make_app(name="First"))
    second = await store.save(make_app(name="Second"))
    # re-saving keeps the original position
    await store.save(first.model_copy(update={"name": "First renamed"}))

    apps = await store.all()
    assert [a.id for a in apps] == [first.id, second.id]
    assert apps[0].name == "First renamed"


@pytest.mark.asyncio
async def test_save_replaces_the_whole_record(store: CredentialStore, session_factory, make_app) -> None:
    saved = await store.save(make_app(managed_repositories=["acme/widget"]))
    await store.save(saved.model_copy(update={"managed_repositories": []}))

    async with session_scope(session_factory) as session:
        rows = (await session.execute(select(GitHubAppRecord))).scalars().all()
        assert len(rows) == 1
        assert rows[0].managed_repositories == []


@pytest.mark.asyncio
async def test_delete(store: CredentialStore) -> None:
    saved = await store.save(App(name="Pending app"))

    assert await store.delete(saved.id) is True
    assert await store.find(saved.id) is None
    assert await store.delete(saved.id) is False
