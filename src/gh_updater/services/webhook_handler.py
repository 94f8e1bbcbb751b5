"""Webhook-driven cache invalidation.

The REST layer publishes trusted events onto a WebhookEventChannel; the
channel's consumer hands them to WebhookEventHandler, which owns every
cache and app mutation caused by GitHub deliveries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import assert_never

from gh_updater.ops.metrics import inc
from gh_updater.schemas.apps import AppStatus
from gh_updater.schemas.webhooks import EventKind, WebhookEvent
from gh_updater.services.cache import CacheKeys, CacheLayer
from gh_updater.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class WebhookEventHandler:
    def __init__(self, store: CredentialStore, cache: CacheLayer):
        self.store = store
        self.cache = cache

    async def handle(self, event: WebhookEvent) -> None:
        inc("webhook_event", attributes={"kind": event.kind.value})

        match event.kind:
            case EventKind.RELEASE_PUBLISHED:
                if event.repo:
                    await self.cache.invalidate(CacheKeys.releases(event.repo))
                    logger.info("Release published; cache invalidated", extra={"repo": event.repo})
            case EventKind.INSTALLATION_REPOSITORIES_CHANGED:
                if event.app_id:
                    await self.cache.invalidate(CacheKeys.repositories(event.app_id))
                    logger.info("Installation repositories changed", extra={"app": event.app_id})
            case EventKind.INSTALLATION_CREATED:
                await self._installation_created(event)
            case EventKind.INSTALLATION_DELETED:
                await self._installation_deleted(event)
            case EventKind.PING:
                logger.info("Webhook ping received", extra={"app": event.app_id})
            case _:
                assert_never(event.kind)

    async def _installation_created(self, event: WebhookEvent) -> None:
        app = await self.store.find(event.app_id) if event.app_id else None
        if app is None or not event.installation_id:
            logger.warning("Installation event for an unknown app", extra={"app": event.app_id})
            return

        await self.store.save(
            app.model_copy(update={"installation_id": event.installation_id, "status": AppStatus.INSTALLED})
        )
        await self.cache.invalidate(CacheKeys.token(app.id))
        await self.cache.invalidate(CacheKeys.repositories(app.id))
        logger.info(
            "App installed",
            extra={"app": app.id, "installation_id": event.installation_id},
        )

    async def _installation_deleted(self, event: WebhookEvent) -> None:
        app = await self.store.find(event.app_id) if event.app_id else None
        if app is None:
            logger.warning("Uninstall event for an unknown app", extra={"app": event.app_id})
            return

        await self.store.save(app.model_copy(update={"installation_id": 0, "status": AppStatus.APP_CREATED}))
        for key in (
            CacheKeys.token(app.id),
            CacheKeys.repositories(app.id),
            CacheKeys.backoff(app.id),
        ):
            await self.cache.invalidate(key)
        logger.info("App uninstalled", extra={"app": app.id})


class WebhookEventChannel:
    """Queue between webhook intake and the invalidation handler."""

    def __init__(self, handler: WebhookEventHandler, maxsize: int = 1000):
        self.handler = handler
        self._queue: asyncio.Queue[WebhookEvent] = asyncio.Queue(maxsize=maxsize)

    async def publish(self, event: WebhookEvent) -> None:
        await self._queue.put(event)

    def pending(self) -> int:
        return self._queue.qsize()

    async def drain(self) -> int:
        """Handle every queued event now. Returns how many were handled."""
        handled = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return handled
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()
            handled += 1

    async def run(self) -> None:
        """Consume events until cancelled."""
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: WebhookEvent) -> None:
        try:
            await self.handler.handle(event)
        except Exception:
            logger.exception(
                "Webhook event handling failed",
                extra={"kind": event.kind.value, "app": event.app_id, "repo": event.repo},
            )
