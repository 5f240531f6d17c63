"""Audit ledger models."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, JSON, String

from climarisk_api.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerEvent(Base):
    """Append-only audit ledger with hash chaining."""

    __tablename__ = "ledger_events"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    event_type = Column(String(64), nullable=False, index=True)  # GENESIS, CMD_*, DECISION_*
    payload = Column(JSON, nullable=False)
    # Unique predecessor: two events claiming the same prev_hash is a fork
    prev_hash = Column(String(64), nullable=False, unique=True)
    event_hash = Column(String(64), nullable=False, unique=True, index=True)

    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<LedgerEvent id={self.id} type={self.event_type} hash={self.event_hash[:12]}>"
