"""Webhook event intake schemas.

GitHub deliveries are reduced to a closed set of event kinds before
they reach the invalidation handler.
Reference: https://docs.github.com/en/webhooks/webhook-events-and-payloads
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel

from gh_updater.schemas.packages import normalize_repo_slug

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    RELEASE_PUBLISHED = "release_published"
    INSTALLATION_REPOSITORIES_CHANGED = "installation_repositories_changed"
    INSTALLATION_CREATED = "installation_created"
    INSTALLATION_DELETED = "installation_deleted"
    PING = "ping"


@dataclass(frozen=True)
class WebhookEvent:
    """A trusted, already-authenticated event."""

    kind: EventKind
    app_id: str | None = None
    repo: str | None = None
    installation_id: int | None = None


def parse_github_event(
    event_type: str,
    payload: dict[str, Any],
    *,
    app_id: str | None,
) -> WebhookEvent | None:
    """Map a GitHub delivery onto an EventKind. Returns None for ignored events."""
    action = payload.get("action")

    if event_type == "ping":
        return WebhookEvent(kind=EventKind.PING, app_id=app_id)

    if event_type == "release":
        if action != "published":
            return None
        repo_info = payload.get("repository") or {}
        repo = normalize_repo_slug(repo_info.get("full_name") if isinstance(repo_info, dict) else None)
        if repo is None:
            logger.warning("Release event without a repository", extra={"app_id": app_id})
            return None
        return WebhookEvent(kind=EventKind.RELEASE_PUBLISHED, app_id=app_id, repo=repo)

    if event_type == "installation_repositories":
        return WebhookEvent(kind=EventKind.INSTALLATION_REPOSITORIES_CHANGED, app_id=app_id)

    if event_type == "installation":
        installation = payload.get("installation") or {}
        installation_id = installation.get("id") if isinstance(installation, dict) else None
        if action == "created" and isinstance(installation_id, int):
            return WebhookEvent(
                kind=EventKind.INSTALLATION_CREATED,
                app_id=app_id,
                installation_id=installation_id,
            )
        if action == "deleted":
            return WebhookEvent(kind=EventKind.INSTALLATION_DELETED, app_id=app_id)
        return None

    return None


class WebhookResponse(BaseModel):
    status: str
    message: str
    correlation_id: str | None = None
