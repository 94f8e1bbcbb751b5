"""Security utilities for webhook signature verification.

GitHub uses HMAC-SHA256 for webhook signature verification. Each App has
its own webhook secret, so a delivery is attributed to the App whose
secret produces the signature.
Reference: https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries
"""
import hashlib
import hmac
import logging
from collections.abc import Iterable

from gh_updater.schemas.apps import App

logger = logging.getLogger(__name__)


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails."""

    pass


def verify_github_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str,
) -> bool:
    """
    Verify GitHub webhook signature using HMAC-SHA256.

    Args:
        payload: Raw request body bytes
        signature_header: X-Hub-Signature-256 header value
        secret: Webhook secret configured on the GitHub App

    Returns:
        True if signature is valid

    Raises:
        WebhookSignatureError: If signature is missing, malformed, or invalid
    """
    if not signature_header:
        raise WebhookSignatureError("Missing X-Hub-Signature-256 header")

    if not signature_header.startswith("sha256="):
        raise WebhookSignatureError("Invalid signature format")

    expected_signature = signature_header[len("sha256="):]

    computed_signature = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload,
        digestmod=hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(expected_signature, computed_signature):
        raise WebhookSignatureError("Signature mismatch")

    return True


def sign_payload(payload: bytes, secret: str) -> str:
    """X-Hub-Signature-256 value for ``payload``."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def match_app_by_signature(
    payload: bytes,
    signature_header: str | None,
    apps: Iterable[App],
) -> App:
    """
    Find the app whose webhook secret signed the payload.

    Apps without a webhook secret are never matched.

    Raises:
        WebhookSignatureError: If no app's secret validates the signature
    """
    if not signature_header:
        raise WebhookSignatureError("Missing X-Hub-Signature-256 header")

    for app in apps:
        if not app.webhook_secret:
            continue
        try:
            verify_github_signature(payload, signature_header, app.webhook_secret)
        except WebhookSignatureError:
            continue
        return app

    raise WebhookSignatureError("Signature does not match any configured app")
