"""Periodic package sync.

Runs discovery, matching and release resolution outside of web requests
so cached release data is warm and update counts are logged.
"""

import asyncio
import logging
from typing import Any

from celery import Task

from gh_updater.celery_app import celery_app
from gh_updater.ops.retry_policy import compute_backoff_seconds, is_retryable_exception

logger = logging.getLogger(__name__)


class BaseTask(Task):
    """Base task class with common error handling."""

    abstract = True

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.error(
            "Task failed",
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "error": str(exc),
            },
            exc_info=exc,
        )

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.warning(
            "Task retrying",
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "error": str(exc),
                "retry_count": self.request.retries,
            },
        )


async def run_sync() -> dict[str, Any]:
    """Build a container, sync once and summarize the result."""
    from gh_updater.api.deps import UpdaterContainer
    from gh_updater.config import get_settings

    container = UpdaterContainer.build(get_settings())
    try:
        views = await container.service.sync()
    finally:
        await container.aclose()

    summary: dict[str, int] = {}
    for view in views:
        summary[view.status.value] = summary.get(view.status.value, 0) + 1
    return {"packages": len(views), "statuses": summary}


@celery_app.task(bind=True, base=BaseTask, max_retries=3)
def sync_packages(self) -> dict:
    """Refresh package update status. Transient failures retry with backoff."""
    from gh_updater.observability.tracing import init_tracing, start_span

    init_tracing(service_name="gh-updater-worker")

    try:
        with start_span("sync_packages", attributes={"task_id": self.request.id}):
            result = asyncio.run(run_sync())
    except Exception as exc:
        if is_retryable_exception(exc) and self.request.retries < self.max_retries:
            countdown = compute_backoff_seconds(attempt=self.request.retries + 1, base=60, maximum=900)
            raise self.retry(exc=exc, countdown=countdown)
        raise

    logger.info("Package sync task completed", extra=result)
    return result
