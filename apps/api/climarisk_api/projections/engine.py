"""Projection engine: derives read models from ledger events."""

import logging

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from climarisk_api.ledger.events import DECISION_WEATHER_RISK, parse_payload
from climarisk_api.ledger.service import LedgerService
from climarisk_api.models import DecisionHistory, EntityState, LedgerEvent
from climarisk_api.policy.schema import DecisionRecord

logger = logging.getLogger(__name__)

_STATE_COLUMNS = (
    "entity_id",
    "updated_at",
    "decision",
    "applied_rule",
    "raw_input",
    "ledger_hash",
    "ledger_event_id",
)
_HISTORY_COLUMNS = (
    "ledger_event_id",
    "entity_id",
    "created_at",
    "decision",
    "applied_rule",
    "raw_input",
    "ledger_hash",
)


def _dialect_insert(db: Session):
    """INSERT construct supporting ON CONFLICT for the bound dialect."""
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Projection upserts are not supported on {name}")


class ProjectionEngine:
    """Applies decision events to the current-state and history projections.

    Both writes join the caller's transaction. Applying the same ledger event
    twice leaves exactly one history row and the same current state. The
    current-state upsert never replaces a row produced by a later event.
    """

    def __init__(self, db: Session):
        """Initialize projection engine."""
        self.db = db

    def apply(
        self,
        entity_id: int,
        record: DecisionRecord,
        raw_input: dict,
        ledger_event: LedgerEvent,
    ) -> None:
        """Project one decision produced by ``ledger_event``."""
        insert = _dialect_insert(self.db)
        applied_rule = record.applied_rule.model_dump(mode="json")
        decision = record.decision.value

        state = insert(EntityState.__table__).values(
            entity_id=entity_id,
            updated_at=ledger_event.created_at,
            decision=decision,
            applied_rule=applied_rule,
            raw_input=raw_input,
            ledger_hash=ledger_event.event_hash,
            ledger_event_id=ledger_event.id,
        )
        state = state.on_conflict_do_update(
            index_elements=["entity_id"],
            set_={
                "updated_at": state.excluded.updated_at,
                "decision": state.excluded.decision,
                "applied_rule": state.excluded.applied_rule,
                "raw_input": state.excluded.raw_input,
                "ledger_hash": state.excluded.ledger_hash,
                "ledger_event_id": state.excluded.ledger_event_id,
            },
            where=EntityState.__table__.c.ledger_event_id <= state.excluded.ledger_event_id,
        )
        self.db.execute(state)

        history = (
            insert(DecisionHistory.__table__)
            .values(
                ledger_event_id=ledger_event.id,
                entity_id=entity_id,
                created_at=ledger_event.created_at,
                decision=decision,
                applied_rule=applied_rule,
                raw_input=raw_input,
                ledger_hash=ledger_event.event_hash,
            )
            .on_conflict_do_nothing()
        )
        self.db.execute(history)

        logger.debug(
            "Projection applied",
            extra={
                "entity_id": entity_id,
                "decision": decision,
                "ledger_hash": ledger_event.event_hash,
            },
        )

    def apply_event(self, ledger_event: LedgerEvent) -> bool:
        """Project a stored ledger event. Non-decision events are skipped."""
        if ledger_event.event_type != DECISION_WEATHER_RISK:
            return False
        payload = parse_payload(ledger_event.event_type, ledger_event.payload)
        record = DecisionRecord(decision=payload.decision, applied_rule=payload.applied_rule)
        self.apply(payload.entity.id, record, payload.raw_input, ledger_event)
        return True

    def rebuild(self) -> int:
        """Drop both projections and replay the whole ledger in order. Commits."""
        self.db.execute(delete(DecisionHistory))
        self.db.execute(delete(EntityState))

        applied = 0
        for event in LedgerService(self.db).iter_events():
            if self.apply_event(event):
                applied += 1
        self.db.commit()

        logger.info(f"Projections rebuilt from ledger: {applied} decision events replayed")
        return applied

    def snapshot(self) -> dict:
        """Both projections as plain rows, in key order."""
        states = self.db.scalars(
            select(EntityState)
            .order_by(EntityState.entity_id)
            .execution_options(populate_existing=True)
        ).all()
        history = self.db.scalars(
            select(DecisionHistory)
            .order_by(DecisionHistory.ledger_event_id)
            .execution_options(populate_existing=True)
        ).all()
        return {
            "state": [{c: getattr(row, c) for c in _STATE_COLUMNS} for row in states],
            "history": [{c: getattr(row, c) for c in _HISTORY_COLUMNS} for row in history],
        }
