"""Database models - import all models here for Alembic discovery."""

from climarisk_api.models.entity import MonitoredEntity
from climarisk_api.models.ledger import LedgerEvent
from climarisk_api.models.projection import DecisionHistory, EntityState

__all__ = [
    "LedgerEvent",
    "MonitoredEntity",
    "EntityState",
    "DecisionHistory",
]
