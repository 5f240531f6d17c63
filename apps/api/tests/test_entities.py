"""Tests for entity commands and queries."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from climarisk_api.errors import NotFoundError
from climarisk_api.ledger.events import (
    CMD_ENTITY_ADD,
    CMD_ENTITY_REFRESH,
    CMD_ENTITY_RETIRE,
    GENESIS,
)
from climarisk_api.ledger.service import LedgerService
from climarisk_api.services.entities import EntityService


def _event_types(db: Session) -> list:
    return [event.event_type for event in LedgerService(db).iter_events()]


def test_create_entity_records_ledger_event(db: Session, entity_service: EntityService, enqueue):
    """Creating an entity writes the row, a ledger event and enqueues a refresh."""
    entity = entity_service.create_entity("  Porto  ", 41.15, -8.61, correlation_id="corr-1")

    assert entity.id is not None
    assert entity.name == "Porto"
    assert entity.is_active is True
    assert _event_types(db) == [GENESIS, CMD_ENTITY_ADD]

    add_event = LedgerService(db).last_event()
    assert add_event.payload == {
        "entity": {"id": entity.id, "name": "Porto", "lat": 41.15, "lon": -8.61, "is_active": True}
    }
    enqueue.assert_called_once_with(entity.id, "corr-1")


@pytest.mark.parametrize(
    "name,lat,lon",
    [("", 0, 0), ("x" * 81, 0, 0), ("ok", 90.5, 0), ("ok", 0, -180.5)],
)
def test_create_entity_validates_input(db: Session, entity_service: EntityService, name, lat, lon):
    """Invalid names and coordinates are refused before any write."""
    with pytest.raises(ValueError):
        entity_service.create_entity(name, lat, lon)
    assert _event_types(db) == []


def test_create_entity_survives_enqueue_failure(db: Session):
    """The entity is kept when the first refresh cannot be queued."""
    enqueue = MagicMock(side_effect=ConnectionError("broker down"))
    entity = EntityService(db, enqueue=enqueue).create_entity("Faro", 37.0, -7.9)

    assert entity.id is not None
    assert _event_types(db) == [GENESIS, CMD_ENTITY_ADD]


def test_request_refresh(db: Session, entity_service: EntityService, test_entity, enqueue):
    """A refresh is recorded in the ledger and then enqueued."""
    enqueue.reset_mock()
    job_id = entity_service.request_refresh(test_entity.id, correlation_id="corr-2")

    assert job_id == "job-123"
    enqueue.assert_called_once_with(test_entity.id, "corr-2")
    assert LedgerService(db).last_event().payload == {"entity_id": test_entity.id}
    assert _event_types(db)[-1] == CMD_ENTITY_REFRESH


def test_request_refresh_unknown_entity(db: Session, entity_service: EntityService, enqueue):
    """Unknown entities are rejected without a ledger event or a job."""
    with pytest.raises(NotFoundError):
        entity_service.request_refresh(404)
    enqueue.assert_not_called()
    assert _event_types(db) == []


def test_retire_entity(db: Session, entity_service: EntityService, test_entity):
    """Retired entities leave the list and refuse further refreshes."""
    entity = entity_service.retire_entity(test_entity.id)

    assert entity.is_active is False
    assert _event_types(db)[-1] == CMD_ENTITY_RETIRE
    assert entity_service.list_entities() == []

    with pytest.raises(NotFoundError):
        entity_service.request_refresh(test_entity.id)
    with pytest.raises(NotFoundError):
        entity_service.retire_entity(test_entity.id)


def test_list_entities_includes_current_state(
    db: Session, entity_service: EntityService, test_entity, cycle
):
    """Listed entities carry their latest decision, or None before the first one."""
    other = entity_service.create_entity("Quiet Bay", 10.0, 10.0)
    cycle.run(test_entity.id)

    listed = {row["id"]: row for row in entity_service.list_entities()}
    assert set(listed) == {test_entity.id, other.id}
    assert listed[test_entity.id]["decision"] == "NORMAL"
    assert listed[test_entity.id]["ledger_hash"] is not None
    assert listed[other.id]["decision"] is None
    assert listed[other.id]["applied_rule"] is None


def test_history_newest_first_and_limited(
    db: Session, entity_service: EntityService, test_entity, cycle, sensor, make_reading
):
    """History is ordered newest first and honors the limit."""
    for rain in (0, 10, 30):
        sensor.read.return_value = make_reading(rain_1h_mm=rain)
        cycle.run(test_entity.id)

    history = entity_service.get_history(test_entity.id)
    assert [row.decision for row in history] == ["CRITICAL", "ALERT", "NORMAL"]
    assert len(entity_service.get_history(test_entity.id, limit=2)) == 2


def test_history_readable_after_retire(
    db: Session, entity_service: EntityService, test_entity, cycle
):
    """Retiring keeps past decisions queryable."""
    cycle.run(test_entity.id)
    entity_service.retire_entity(test_entity.id)

    assert len(entity_service.get_history(test_entity.id)) == 1


def test_history_unknown_entity(entity_service: EntityService):
    """History of an entity that never existed is a not-found."""
    with pytest.raises(NotFoundError):
        entity_service.get_history(12345)
