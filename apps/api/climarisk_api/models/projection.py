"""Read models derived from the ledger."""

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import relationship

from climarisk_api.db.base import Base

DECISION_CHECK = "decision IN ('NORMAL', 'ALERT', 'CRITICAL')"


class EntityState(Base):
    """Current state projection: latest decision per entity."""

    __tablename__ = "entity_state"

    entity_id = Column(Integer, ForeignKey("monitored_entities.id"), primary_key=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    decision = Column(String(16), nullable=False)
    applied_rule = Column(JSON, nullable=False)
    raw_input = Column(JSON, nullable=False)
    ledger_hash = Column(String(64), nullable=False)
    ledger_event_id = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=False)

    __table_args__ = (
        CheckConstraint(DECISION_CHECK, name="ck_entity_state_decision"),
    )

    # Relationships
    entity = relationship("MonitoredEntity", back_populates="state")


class DecisionHistory(Base):
    """History projection: one immutable row per decision ledger event."""

    __tablename__ = "decision_history"

    ledger_event_id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("ledger_events.id"),
        primary_key=True,
        autoincrement=False,
    )
    entity_id = Column(Integer, ForeignKey("monitored_entities.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    decision = Column(String(16), nullable=False)
    applied_rule = Column(JSON, nullable=False)
    raw_input = Column(JSON, nullable=False)
    ledger_hash = Column(String(64), nullable=False, unique=True)

    __table_args__ = (
        CheckConstraint(DECISION_CHECK, name="ck_decision_history_decision"),
        Index("ix_decision_history_entity_time", "entity_id", "created_at"),
    )
