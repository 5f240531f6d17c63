"""Read endpoints over the projections and the audit verifier."""

from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from climarisk_api.db.session import get_db
from climarisk_api.ledger.verifier import AuditVerifier
from climarisk_api.routes.commands import get_entity_service
from climarisk_api.services.entities import EntityService

router = APIRouter(prefix="/api/read", tags=["reads"])


class EntityStateOut(BaseModel):
    """Entity joined with its current-state projection."""

    id: int
    name: str
    lat: float
    lon: float
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None
    decision: Optional[str] = None
    applied_rule: Optional[dict] = None
    raw_input: Optional[dict] = None
    ledger_hash: Optional[str] = None


class EntityListResponse(BaseModel):
    """Active entities."""

    ok: bool = True
    entities: List[EntityStateOut]


class HistoryEntry(BaseModel):
    """One decision from the history projection."""

    ledger_event_id: int
    created_at: datetime
    decision: str
    applied_rule: dict
    raw_input: dict
    ledger_hash: str

    model_config = ConfigDict(from_attributes=True)


class HistoryResponse(BaseModel):
    """Decision history of one entity, newest first."""

    ok: bool = True
    entity_id: int
    history: List[HistoryEntry]


class AuditVerifyResponse(BaseModel):
    """Full-chain verification result."""

    ok: bool
    count: int
    errors: List[dict[str, Any]]


@router.get("/entities", response_model=EntityListResponse)
def list_entities(service: EntityService = Depends(get_entity_service)):
    """List active entities with their latest decision."""
    return EntityListResponse(entities=service.list_entities())


@router.get("/entities/{entity_id}/history", response_model=HistoryResponse)
def entity_history(
    entity_id: int,
    limit: int = Query(50, ge=1, le=500),
    service: EntityService = Depends(get_entity_service),
):
    """Recent decisions for one entity."""
    rows = service.get_history(entity_id, limit=limit)
    return HistoryResponse(
        entity_id=entity_id,
        history=[HistoryEntry.model_validate(row) for row in rows],
    )


@router.get("/audit/verify", response_model=AuditVerifyResponse)
def verify_ledger(db: Session = Depends(get_db)):
    """Recompute every hash link in the ledger."""
    return AuditVerifier(db).verify()
