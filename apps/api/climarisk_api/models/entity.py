"""Monitored entity model."""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String
from sqlalchemy.orm import relationship

from climarisk_api.db.base import Base
from climarisk_api.models.ledger import utcnow


class MonitoredEntity(Base):
    """A location whose weather is periodically assessed."""

    __tablename__ = "monitored_entities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(80), nullable=False)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    # Relationships
    state = relationship("EntityState", back_populates="entity", uselist=False)
