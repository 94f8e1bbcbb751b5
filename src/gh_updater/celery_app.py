"""Celery application configuration."""
from celery import Celery

from gh_updater.config import get_settings

settings = get_settings()

celery_app = Celery(
    "gh_updater",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["gh_updater.tasks.sync_tasks"],
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Reliability settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    result_expires=3600,

    task_default_retry_delay=60,
    task_max_retries=3,

    task_routes={
        "gh_updater.tasks.sync_tasks.*": {"queue": "default"},
    },

    # Task time limits
    task_soft_time_limit=300,
    task_time_limit=600,
)

# Periodic package status refresh
celery_app.conf.beat_schedule = {
    "sync-packages": {
        "task": "gh_updater.tasks.sync_tasks.sync_packages",
        "schedule": float(settings.sync_interval_seconds),
    },
}
