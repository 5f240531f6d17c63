"""Tests for ledger appends, genesis bootstrap and conflict handling."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from climarisk_api.errors import AppendConflictError, InvalidPayloadError
from climarisk_api.ledger.canonical import GENESIS_PREV_HASH, compute_event_hash
from climarisk_api.ledger.events import (
    CMD_ENTITY_REFRESH,
    CMD_ENTITY_RETIRE,
    GENESIS,
    GENESIS_NOTE,
)
from climarisk_api.ledger.service import LedgerService
from climarisk_api.models import LedgerEvent
from climarisk_api.models.ledger import utcnow


def _append_refresh(ledger: LedgerService, entity_id: int) -> LedgerEvent:
    return ledger.run_unit(lambda l: l.append_event(CMD_ENTITY_REFRESH, {"entity_id": entity_id}))


def test_ensure_genesis_creates_single_root(db: Session, ledger: LedgerService):
    """Genesis has prev hash "0" and is created exactly once."""
    genesis = ledger.ensure_genesis()

    assert genesis is not None
    assert genesis.event_type == GENESIS
    assert genesis.prev_hash == GENESIS_PREV_HASH
    assert genesis.payload == {"note": GENESIS_NOTE}
    assert genesis.event_hash == compute_event_hash("0", GENESIS, {"note": GENESIS_NOTE})

    assert ledger.ensure_genesis() is None
    assert ledger.count() == 1


def test_first_append_bootstraps_genesis(db: Session, ledger: LedgerService):
    """Appending to an empty ledger writes genesis first."""
    event = _append_refresh(ledger, 1)

    events = list(ledger.iter_events())
    assert [e.event_type for e in events] == [GENESIS, CMD_ENTITY_REFRESH]
    assert event.prev_hash == events[0].event_hash


def test_chain_links_each_event_to_predecessor(db: Session, ledger: LedgerService):
    """Every event's prev hash is the previous event's hash."""
    ledger.ensure_genesis()
    for entity_id in range(1, 6):
        _append_refresh(ledger, entity_id)

    events = list(ledger.iter_events(batch_size=2))
    assert len(events) == 6
    assert [e.id for e in events] == sorted(e.id for e in events)
    for previous, current in zip(events, events[1:]):
        assert current.prev_hash == previous.event_hash
        assert current.event_hash == compute_event_hash(
            current.prev_hash, current.event_type, current.payload
        )


def test_last_event_and_lookup_by_hash(db: Session, ledger: LedgerService):
    """The latest event is found by id and by hash."""
    ledger.ensure_genesis()
    event = _append_refresh(ledger, 7)

    assert ledger.last_event().id == event.id
    assert ledger.get_by_hash(event.event_hash).payload == {"entity_id": 7}
    assert ledger.get_by_hash("f" * 64) is None


def test_append_rejects_genesis_type(db: Session, ledger: LedgerService):
    """Genesis only comes from bootstrap."""
    with pytest.raises(InvalidPayloadError):
        ledger.append_event(GENESIS, {"note": "second root"})


@pytest.mark.parametrize(
    "event_type,payload",
    [
        ("UNKNOWN_EVENT", {"entity_id": 1}),
        (CMD_ENTITY_RETIRE, {"entity_id": "not-an-int"}),
        (CMD_ENTITY_RETIRE, {"entity_id": 1, "extra": True}),
    ],
)
def test_append_validates_payload(db: Session, ledger: LedgerService, event_type, payload):
    """Payloads are checked against their event schema before hashing."""
    with pytest.raises(InvalidPayloadError):
        ledger.run_unit(lambda l: l.append_event(event_type, payload))
    assert ledger.count() == 0


def test_store_rejects_fork(db: Session, ledger: LedgerService):
    """A second successor of the same event violates the unique prev hash."""
    genesis = ledger.ensure_genesis()
    _append_refresh(ledger, 1)

    db.add(
        LedgerEvent(
            created_at=utcnow(),
            event_type=CMD_ENTITY_REFRESH,
            payload={"entity_id": 2},
            prev_hash=genesis.event_hash,
            event_hash=compute_event_hash(genesis.event_hash, CMD_ENTITY_REFRESH, {"entity_id": 2}),
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    assert ledger.count() == 2


def test_stale_head_conflict_is_retried(db: Session, ledger: LedgerService, monkeypatch):
    """An append that lost the race is replayed against the new head."""
    genesis = ledger.ensure_genesis()
    winner = _append_refresh(ledger, 1)
    winner_hash = winner.event_hash

    real_last_event = LedgerService.last_event
    calls = []

    def stale_once(self):
        calls.append(1)
        if len(calls) == 1:
            return genesis
        return real_last_event(self)

    monkeypatch.setattr(LedgerService, "last_event", stale_once)
    event = _append_refresh(ledger, 2)

    assert len(calls) == 2
    assert event.prev_hash == winner_hash
    monkeypatch.undo()
    assert ledger.count() == 3


def test_conflict_exhaustion_propagates(db: Session):
    """After the last attempt the conflict reaches the caller."""
    ledger = LedgerService(db, max_attempts=3, backoff_seconds=0)
    attempts = []

    def always_conflicts(l):
        attempts.append(1)
        raise AppendConflictError(CMD_ENTITY_REFRESH, "abc")

    with pytest.raises(AppendConflictError):
        ledger.run_unit(always_conflicts)
    assert len(attempts) == 3


def test_failed_unit_rolls_back(db: Session, ledger: LedgerService):
    """An error inside a unit discards its appends."""
    ledger.ensure_genesis()

    def failing(l):
        l.append_event(CMD_ENTITY_REFRESH, {"entity_id": 1})
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        ledger.run_unit(failing)
    assert ledger.count() == 1
