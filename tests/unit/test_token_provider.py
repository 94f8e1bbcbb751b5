from __future__ import annotations

from datetime import UTC, datetime

import httpx
import jwt
import pytest

from gh_updater.core.exceptions import AuthError, AuthErrorKind
from gh_updater.schemas.apps import App
from gh_updater.services.cache import CacheKeys
from gh_updater.services.token_provider import TokenProvider

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def _provider(store, cache, settings, handler) -> TokenProvider:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TokenProvider(store, cache, http, settings, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_mints_jwt_and_exchanges_for_installation_token(
    store, cache, settings, make_app, private_key_pem, token_response
) -> None:
    app = await store.save(make_app())
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["jwt"] = request.headers["Authorization"].removeprefix("Bearer ")
        return token_response("ghs_abc123456789xyz", "2026-01-01T13:00:00Z")

    provider = _provider(store, cache, settings, handler)
    token = await provider.get_installation_token(app.id)

    assert token == "ghs_abc123456789xyz"
    assert seen["url"].endswith("/app/installations/202/access_tokens")
    claims = jwt.decode(seen["jwt"], options={"verify_signature": False})
    assert claims["iss"] == "101"
    assert claims["exp"] - claims["iat"] == settings.jwt_expiry_seconds
    assert jwt.get_unverified_header(seen["jwt"])["alg"] == "RS256"


@pytest.mark.asyncio
async def test_token_is_cached_until_expiry_minus_skew(store, cache, clock, settings, make_app, token_response) -> None:
    app = await store.save(make_app())
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return token_response(expires_at="2026-01-01T13:00:00Z")

    provider = _provider(store, cache, settings, handler)
    await provider.get_installation_token(app.id)
    await provider.get_installation_token(app.id)
    assert len(calls) == 1

    # one hour lifetime minus the 60s skew
    clock.advance(3600 - 60)
    assert await cache.get(CacheKeys.token(app.id)) is None
    await provider.get_installation_token(app.id)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_invalidate_forces_a_new_exchange(store, cache, settings, make_app, token_response) -> None:
    app = await store.save(make_app())
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return token_response(token=f"ghs_token_number_{len(calls)}")

    provider = _provider(store, cache, settings, handler)
    first = await provider.get_installation_token(app.id)
    await provider.invalidate(app.id)
    second = await provider.get_installation_token(app.id)

    assert first != second
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_missing_credentials(store, cache, settings) -> None:
    app = await store.save(App(name="Half configured", app_id=101))

    provider = _provider(store, cache, settings, lambda request: httpx.Response(500))
    with pytest.raises(AuthError) as exc:
        await provider.get_installation_token(app.id)
    assert exc.value.kind == AuthErrorKind.MISSING_CREDENTIALS


@pytest.mark.asyncio
async def test_invalid_private_key(store, cache, settings, make_app) -> None:
    app = await store.save(make_app(private_key="not a pem key"))

    provider = _provider(store, cache, settings, lambda request: httpx.Response(500))
    with pytest.raises(AuthError) as exc:
        await provider.get_installation_token(app.id)
    assert exc.value.kind == AuthErrorKind.INVALID_KEY


@pytest.mark.asyncio
async def test_github_rejection_carries_status_and_body(store, cache, settings, make_app) -> None:
    app = await store.save(make_app())

    provider = _provider(
        store,
        cache,
        settings,
        lambda request: httpx.Response(401, json={"message": "Bad credentials"}),
    )
    with pytest.raises(AuthError) as exc:
        await provider.get_installation_token(app.id)

    assert exc.value.kind == AuthErrorKind.GITHUB_REJECTED
    assert exc.value.status_code == 401
    assert "Bad credentials" in (exc.value.body or "")


@pytest.mark.asyncio
async def test_network_error(store, cache, settings, make_app) -> None:
    app = await store.save(make_app())

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = _provider(store, cache, settings, handler)
    with pytest.raises(AuthError) as exc:
        await provider.get_installation_token(app.id)
    assert exc.value.kind == AuthErrorKind.NETWORK_ERROR


@pytest.mark.asyncio
async def test_malformed_token_response_is_rejected(store, cache, settings, make_app) -> None:
    app = await store.save(make_app())

    provider = _provider(store, cache, settings, lambda request: httpx.Response(201, text="not json"))
    with pytest.raises(AuthError) as exc:
        await provider.get_installation_token(app.id)

    assert exc.value.kind == AuthErrorKind.GITHUB_REJECTED
    assert exc.value.status_code == 201
