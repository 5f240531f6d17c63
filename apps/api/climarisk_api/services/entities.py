"""Commands and queries on monitored entities."""

import logging
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from climarisk_api.celery_client import enqueue_refresh
from climarisk_api.errors import NotFoundError
from climarisk_api.ledger.events import CMD_ENTITY_ADD, CMD_ENTITY_REFRESH, CMD_ENTITY_RETIRE
from climarisk_api.ledger.service import LedgerService
from climarisk_api.models import DecisionHistory, EntityState, MonitoredEntity

logger = logging.getLogger(__name__)

Enqueue = Callable[[int, Optional[str]], str]


def entity_snapshot(entity: MonitoredEntity) -> dict:
    """Ledger view of an entity (no store-assigned timestamps)."""
    return {
        "id": entity.id,
        "name": entity.name,
        "lat": entity.lat,
        "lon": entity.lon,
        "is_active": entity.is_active,
    }


def get_active_entity(db: Session, entity_id: int) -> MonitoredEntity:
    """Load an active entity or raise ``NotFoundError``."""
    entity = db.scalars(
        select(MonitoredEntity).where(
            MonitoredEntity.id == entity_id,
            MonitoredEntity.is_active == True,  # noqa: E712
        )
    ).first()
    if entity is None:
        raise NotFoundError(entity_id)
    return entity


class EntityService:
    """Entity commands record a ledger event in the same transaction as their write."""

    def __init__(self, db: Session, enqueue: Optional[Enqueue] = None):
        """Initialize entity service."""
        self.db = db
        self.ledger = LedgerService(db)
        self.enqueue = enqueue or enqueue_refresh

    def create_entity(
        self,
        name: str,
        lat: float,
        lon: float,
        correlation_id: Optional[str] = None,
    ) -> MonitoredEntity:
        """Register an entity and schedule its first decision cycle."""
        name = name.strip()
        if not 1 <= len(name) <= 80:
            raise ValueError("name must be 1-80 characters")
        if not -90 <= lat <= 90:
            raise ValueError("lat must be within [-90, 90]")
        if not -180 <= lon <= 180:
            raise ValueError("lon must be within [-180, 180]")

        def unit(ledger: LedgerService) -> MonitoredEntity:
            entity = MonitoredEntity(name=name, lat=lat, lon=lon, is_active=True)
            self.db.add(entity)
            self.db.flush()
            ledger.append_event(CMD_ENTITY_ADD, {"entity": entity_snapshot(entity)})
            return entity

        entity = self.ledger.run_unit(unit)
        logger.info(
            f"Entity created: {entity.id}",
            extra={"entity_id": entity.id, "correlation_id": correlation_id},
        )

        # The entity is committed; a missed first refresh can be requested again
        try:
            self.enqueue(entity.id, correlation_id)
        except Exception as e:
            logger.warning(
                f"Failed to enqueue initial refresh: {e}",
                extra={"entity_id": entity.id, "correlation_id": correlation_id},
                exc_info=True,
            )
        return entity

    def request_refresh(self, entity_id: int, correlation_id: Optional[str] = None) -> str:
        """Record a refresh command and enqueue the decision cycle."""

        def unit(ledger: LedgerService) -> None:
            get_active_entity(self.db, entity_id)
            ledger.append_event(CMD_ENTITY_REFRESH, {"entity_id": entity_id})

        self.ledger.run_unit(unit)
        return self.enqueue(entity_id, correlation_id)

    def retire_entity(self, entity_id: int, correlation_id: Optional[str] = None) -> MonitoredEntity:
        """Deactivate an entity; its projections are kept."""

        def unit(ledger: LedgerService) -> MonitoredEntity:
            entity = get_active_entity(self.db, entity_id)
            entity.is_active = False
            self.db.flush()
            ledger.append_event(CMD_ENTITY_RETIRE, {"entity_id": entity_id})
            return entity

        entity = self.ledger.run_unit(unit)
        logger.info(
            f"Entity retired: {entity_id}",
            extra={"entity_id": entity_id, "correlation_id": correlation_id},
        )
        return entity

    def list_entities(self) -> List[dict]:
        """Active entities with their current state, oldest first."""
        rows = self.db.execute(
            select(MonitoredEntity, EntityState)
            .outerjoin(EntityState, EntityState.entity_id == MonitoredEntity.id)
            .where(MonitoredEntity.is_active == True)  # noqa: E712
            .order_by(MonitoredEntity.created_at.asc(), MonitoredEntity.id.asc())
        ).all()

        entities = []
        for entity, state in rows:
            entities.append(
                {
                    "id": entity.id,
                    "name": entity.name,
                    "lat": entity.lat,
                    "lon": entity.lon,
                    "is_active": entity.is_active,
                    "created_at": entity.created_at,
                    "updated_at": state.updated_at if state else None,
                    "decision": state.decision if state else None,
                    "applied_rule": state.applied_rule if state else None,
                    "raw_input": state.raw_input if state else None,
                    "ledger_hash": state.ledger_hash if state else None,
                }
            )
        return entities

    def get_history(self, entity_id: int, limit: int = 50) -> List[DecisionHistory]:
        """Most recent decisions for an entity, newest first."""
        exists = self.db.get(MonitoredEntity, entity_id)
        if exists is None:
            raise NotFoundError(entity_id)
        return list(
            self.db.scalars(
                select(DecisionHistory)
                .where(DecisionHistory.entity_id == entity_id)
                .order_by(DecisionHistory.ledger_event_id.desc())
                .limit(limit)
            ).all()
        )
