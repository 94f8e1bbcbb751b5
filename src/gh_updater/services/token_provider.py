"""GitHub App installation access tokens.

Mints an RS256 app JWT from the stored private key, exchanges it for an
installation access token and caches that token until shortly before
GitHub's reported expiry.
Reference: https://docs.github.com/en/apps/creating-github-apps/authenticating-with-a-github-app
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import httpx
import jwt

from gh_updater.config import Settings
from gh_updater.core.encryption import mask_secret
from gh_updater.core.exceptions import AuthError, AuthErrorKind, OperationTimeoutError
from gh_updater.ops.deadlines import deadline
from gh_updater.ops.metrics import inc
from gh_updater.services.cache import CacheKeys, CacheLayer
from gh_updater.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

# Fallback lifetime when GitHub omits expires_at (tokens live one hour)
_DEFAULT_TOKEN_LIFETIME = timedelta(seconds=3540)


class JwtSigner(Protocol):
    def __call__(self, private_key_pem: str, claims: dict[str, Any]) -> str: ...


def sign_app_jwt(private_key_pem: str, claims: dict[str, Any]) -> str:
    """Sign GitHub App JWT claims with the app's RSA private key."""
    return jwt.encode(claims, private_key_pem, algorithm="RS256")


@dataclass(frozen=True)
class InstallationToken:
    token: str
    expires_at: datetime

    def to_cache(self) -> dict[str, str]:
        return {"token": self.token, "expires_at": self.expires_at.isoformat()}


class TokenProvider:
    """Exchanges App credentials for short-lived installation tokens.

    Never retries on its own; retrying is the caller's decision.
    """

    def __init__(
        self,
        store: CredentialStore,
        cache: CacheLayer,
        http_client: httpx.AsyncClient,
        settings: Settings,
        signer: JwtSigner = sign_app_jwt,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._cache = cache
        self._http = http_client
        self._settings = settings
        self._signer = signer
        self._clock = clock

    async def get_installation_token(self, app_id: str) -> str:
        """Return a valid installation token for the app.

        Raises:
            AuthError: Missing credentials, unusable key, or GitHub refused the exchange
            OperationTimeoutError: GitHub did not answer within the request deadline
        """
        cached = await self._cache.get(CacheKeys.token(app_id))
        if isinstance(cached, dict) and cached.get("token"):
            return str(cached["token"])

        app = await self._store.find(app_id)
        if app is None or not app.has_credentials:
            raise AuthError(
                AuthErrorKind.MISSING_CREDENTIALS,
                f"App {app_id} is missing its app id, installation id or private key",
            )

        app_jwt = self.build_app_jwt(app.app_id, app.private_key)
        token = await self._exchange(app_jwt, app.installation_id)

        ttl = (token.expires_at - self._clock()).total_seconds() - self._settings.token_expiry_skew_seconds
        if ttl > 0:
            await self._cache.set(CacheKeys.token(app_id), token.to_cache(), ttl)

        inc("token_minted", attributes={"app_id": app_id})
        logger.info(
            "Minted installation token",
            extra={
                "app": app_id,
                "token": mask_secret(token.token),
                "expires_at": token.expires_at.isoformat(),
            },
        )
        return token.token

    async def invalidate(self, app_id: str) -> None:
        await self._cache.invalidate(CacheKeys.token(app_id))

    def build_app_jwt(self, github_app_id: int, private_key: str) -> str:
        now = self._clock()
        claims = {
            "iat": int(now.timestamp()),
            "exp": int(now.timestamp()) + self._settings.jwt_expiry_seconds,
            "iss": str(github_app_id),
        }
        try:
            return self._signer(private_key, claims)
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthError(
                AuthErrorKind.INVALID_KEY,
                f"Private key for GitHub app {github_app_id} could not sign a JWT: {exc}",
            ) from exc

    async def _exchange(self, app_jwt: str, installation_id: int) -> InstallationToken:
        url = f"{self._settings.github_api_base_url.rstrip('/')}/app/installations/{installation_id}/access_tokens"
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {app_jwt}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        seconds = self._settings.github_request_timeout_seconds
        try:
            async with deadline("installation token exchange", seconds):
                response = await self._http.post(url, headers=headers)
        except httpx.TimeoutException as exc:
            raise OperationTimeoutError("installation token exchange", seconds) from exc
        except httpx.TransportError as exc:
            raise AuthError(
                AuthErrorKind.NETWORK_ERROR,
                f"Could not reach GitHub: {exc}",
            ) from exc

        if response.status_code not in (200, 201):
            raise AuthError(
                AuthErrorKind.GITHUB_REJECTED,
                f"GitHub rejected the token exchange: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AuthError(
                AuthErrorKind.GITHUB_REJECTED,
                "GitHub token exchange returned malformed JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AuthError(
                AuthErrorKind.GITHUB_REJECTED,
                "GitHub token exchange returned no token",
                status_code=response.status_code,
                body=response.text,
            )

        return InstallationToken(token=str(token), expires_at=self._parse_expiry(data.get("expires_at")))

    def _parse_expiry(self, value: Any) -> datetime:
        if isinstance(value, str):
            try:
                expires_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=UTC)
                return expires_at
            except ValueError:
                logger.warning("Unparsable token expiry", extra={"expires_at": value})
        return self._clock() + _DEFAULT_TOKEN_LIFETIME
