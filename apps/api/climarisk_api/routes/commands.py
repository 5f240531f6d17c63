"""Command endpoints: entity creation, refresh and retirement."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from climarisk_api.db.session import get_db
from climarisk_api.middleware.correlation import get_correlation_id
from climarisk_api.services.entities import EntityService

router = APIRouter(prefix="/api/cmd", tags=["commands"])


class EntityCreate(BaseModel):
    """Entity creation request."""

    name: str = Field(..., min_length=1, max_length=80)
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class EntityOut(BaseModel):
    """Entity as stored."""

    id: int
    name: str
    lat: float
    lon: float
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class EntityCommandResponse(BaseModel):
    """Response for entity create/retire."""

    ok: bool = True
    entity: EntityOut


class RefreshResponse(BaseModel):
    """Response for a refresh request."""

    ok: bool = True
    enqueued: bool = True
    job_id: Optional[str] = None


def get_entity_service(db: Session = Depends(get_db)) -> EntityService:
    """Entity service bound to the request session."""
    return EntityService(db)


def _correlation_id() -> str:
    return get_correlation_id() or str(uuid.uuid4())


@router.post("/entities", response_model=EntityCommandResponse, status_code=status.HTTP_201_CREATED)
def create_entity(
    request_data: EntityCreate,
    service: EntityService = Depends(get_entity_service),
):
    """Register a monitored entity and schedule its first decision."""
    try:
        entity = service.create_entity(
            request_data.name,
            request_data.lat,
            request_data.lon,
            correlation_id=_correlation_id(),
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return EntityCommandResponse(entity=EntityOut.model_validate(entity))


@router.post("/entities/{entity_id}/refresh", response_model=RefreshResponse)
def refresh_entity(
    entity_id: int,
    service: EntityService = Depends(get_entity_service),
):
    """Request a new decision cycle for an active entity."""
    job_id = service.request_refresh(entity_id, correlation_id=_correlation_id())
    return RefreshResponse(job_id=job_id)


@router.post("/entities/{entity_id}/retire", response_model=EntityCommandResponse)
def retire_entity(
    entity_id: int,
    service: EntityService = Depends(get_entity_service),
):
    """Stop monitoring an entity. Its history stays readable."""
    entity = service.retire_entity(entity_id, correlation_id=_correlation_id())
    return EntityCommandResponse(entity=EntityOut.model_validate(entity))
