"""Celery application configuration."""

from celery import Celery

from climarisk_api.celery_client import celery_config
from climarisk_worker.settings import get_settings

settings = get_settings()

celery_app = Celery("climarisk_worker")
celery_app.conf.update(celery_config(settings))
celery_app.conf.update(
    task_track_started=True,
    task_time_limit=5 * 60,  # 5 minutes
    task_soft_time_limit=4 * 60,  # 4 minutes
    # One decision cycle at a time per worker process
    worker_prefetch_multiplier=1,
)

if settings.refresh_interval_seconds > 0:
    celery_app.conf.beat_schedule = {
        "refresh-all-active-entities": {
            "task": "climarisk_worker.tasks.refresh_all_active",
            "schedule": float(settings.refresh_interval_seconds),
        },
    }

# Tasks register against celery_app, so import them last
from climarisk_worker import tasks  # noqa: F401, E402
