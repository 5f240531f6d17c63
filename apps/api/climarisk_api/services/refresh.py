"""Decision cycle: reading -> rules -> ledger -> projections."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from climarisk_api.ledger.events import DECISION_WEATHER_RISK
from climarisk_api.ledger.service import LedgerService
from climarisk_api.models import LedgerEvent
from climarisk_api.policy.engine import RiskRuleEngine
from climarisk_api.projections.engine import ProjectionEngine
from climarisk_api.sensors.openweather import OpenWeatherClient
from climarisk_api.services.entities import get_active_entity
from climarisk_api.utils.metrics import decisions

logger = logging.getLogger(__name__)


class DecisionCycleService:
    """Runs one decision cycle for one entity.

    The sensor is read before anything is written, so ``UpstreamUnavailable``
    leaves no trace. The decision event and both projection writes commit
    together or not at all.
    """

    def __init__(
        self,
        db: Session,
        sensor: Optional[OpenWeatherClient] = None,
        rules: Optional[RiskRuleEngine] = None,
    ):
        """Initialize decision cycle service."""
        self.db = db
        self.sensor = sensor or OpenWeatherClient()
        self.rules = rules or RiskRuleEngine()
        self.ledger = LedgerService(db)
        self.projections = ProjectionEngine(db)

    def run(self, entity_id: int, correlation_id: Optional[str] = None) -> dict:
        """Fetch, decide, append and project. Returns a summary of the decision."""
        log_extra = {"entity_id": entity_id, "correlation_id": correlation_id}

        entity = get_active_entity(self.db, entity_id)
        snapshot = {"id": entity.id, "name": entity.name, "lat": entity.lat, "lon": entity.lon}

        reading = self.sensor.read(entity.lat, entity.lon)
        record = self.rules.decide(reading.temp_c, reading.wind_ms, reading.rain_1h_mm)

        def unit(ledger: LedgerService) -> LedgerEvent:
            # Re-check inside the unit: the entity may be retired meanwhile
            get_active_entity(self.db, entity_id)
            event = ledger.append_event(
                DECISION_WEATHER_RISK,
                {
                    "entity": snapshot,
                    "decision": record.decision,
                    "applied_rule": record.applied_rule,
                    "raw_input": reading.raw,
                },
            )
            self.projections.apply_event(event)
            return event

        event = self.ledger.run_unit(unit)
        decisions.labels(decision=record.decision.value).inc()

        logger.info(
            f"Decision recorded for entity {entity_id}: {record.decision.value}",
            extra={**log_extra, "ledger_hash": event.event_hash, "triggered_rules": record.rule_ids},
        )
        return {
            "ok": True,
            "entity_id": entity_id,
            "decision": record.decision.value,
            "rules": record.rule_ids,
            "ledger_hash": event.event_hash,
        }
