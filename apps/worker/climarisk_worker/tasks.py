"""Celery tasks for decision cycles."""

import logging
from typing import Optional

from celery import Task
from sqlalchemy import select
from sqlalchemy.orm import Session

from climarisk_api.errors import NotFoundError, UpstreamUnavailable
from climarisk_api.utils.metrics import jobs_processed
from climarisk_worker.celery_app import celery_app
from climarisk_worker.db import get_db
from climarisk_worker.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = next(get_db())
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


@celery_app.task(
    base=DatabaseTask,
    bind=True,
    autoretry_for=(UpstreamUnavailable,),
    max_retries=settings.sensor_max_retries,
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
)
def refresh_entity(self, entity_id: int, correlation_id: Optional[str] = None):
    """Run one decision cycle for an entity."""
    from climarisk_api.services.refresh import DecisionCycleService

    log_extra = {
        "task": "refresh_entity",
        "entity_id": entity_id,
        "correlation_id": correlation_id,
        "attempt": self.request.retries + 1,
    }

    try:
        result = DecisionCycleService(self.db).run(entity_id, correlation_id=correlation_id)
    except NotFoundError:
        # Retired or deleted between enqueue and execution; nothing to retry
        logger.warning(f"Entity {entity_id} not found or inactive, dropping job", extra=log_extra)
        jobs_processed.labels(status="not_found").inc()
        return {"ok": False, "entity_id": entity_id, "error": "not_found"}
    except UpstreamUnavailable as e:
        logger.warning(f"Sensor unavailable for entity {entity_id}: {e}", extra=log_extra)
        jobs_processed.labels(status="upstream_unavailable").inc()
        raise
    except Exception as e:
        logger.error(f"Error refreshing entity {entity_id}: {e}", exc_info=True, extra=log_extra)
        jobs_processed.labels(status="failed").inc()
        raise

    jobs_processed.labels(status="ok").inc()
    logger.info(
        f"Refresh completed for entity {entity_id}: {result['decision']}",
        extra={**log_extra, "ledger_hash": result["ledger_hash"]},
    )
    return result


@celery_app.task(base=DatabaseTask, bind=True)
def refresh_all_active(self):
    """Fan out one refresh task per active entity."""
    from climarisk_api.models import MonitoredEntity

    entity_ids = self.db.scalars(
        select(MonitoredEntity.id)
        .where(MonitoredEntity.is_active == True)  # noqa: E712
        .order_by(MonitoredEntity.id)
    ).all()
    for entity_id in entity_ids:
        refresh_entity.delay(entity_id)

    logger.info(f"Scheduled refresh for {len(entity_ids)} active entities")
    return len(entity_ids)
