"""Celery client used by the API to queue decision cycles.

The worker builds its app from the same ``celery_config`` so both sides agree
on broker, serializer and queue.
"""

import logging
from typing import Optional

from celery import Celery

from climarisk_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)

REFRESH_TASK = "climarisk_worker.tasks.refresh_entity"

_celery_app: Optional[Celery] = None


def celery_config(settings: Settings) -> dict:
    """Configuration shared by the API client and the worker app."""
    return {
        "broker_url": settings.redis_url,
        "result_backend": settings.redis_url,
        "task_serializer": "json",
        "accept_content": ["json"],
        "result_serializer": "json",
        "timezone": "UTC",
        "enable_utc": True,
        "task_default_queue": settings.refresh_queue_name,
    }


def get_celery_app() -> Celery:
    """Get or create the singleton client app."""
    global _celery_app

    if _celery_app is None:
        _celery_app = Celery("climarisk_api")
        _celery_app.conf.update(celery_config(get_settings()))
        logger.info("Initialized Celery client for climarisk_api")

    return _celery_app


def enqueue_refresh(entity_id: int, correlation_id: Optional[str] = None) -> str:
    """Queue one decision cycle for ``entity_id``; returns the task id."""
    task = (
        get_celery_app()
        .signature(
            REFRESH_TASK,
            args=[entity_id],
            kwargs={"correlation_id": correlation_id},
            queue=get_settings().refresh_queue_name,
        )
        .apply_async()
    )
    logger.info(
        f"Enqueued refresh task: {task.id}",
        extra={"entity_id": entity_id, "correlation_id": correlation_id},
    )
    return task.id
