"""Rule engine for deterministic weather risk decisions."""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from climarisk_api.policy.schema import (
    AppliedRule,
    DecisionInputs,
    DecisionRecord,
    MatchedRule,
    Severity,
)

logger = logging.getLogger(__name__)

TEMP_UNKNOWN = "TEMP_UNKNOWN"


@dataclass(frozen=True)
class Threshold:
    """One rule: fires when ``value <op> limit``."""

    rule_id: str
    severity: Severity
    limit: float
    op: str  # ">=" or "<="

    def matches(self, value: float) -> bool:
        if self.op == ">=":
            return value >= self.limit
        return value <= self.limit


def _fmt(limit: float) -> str:
    return str(int(limit)) if float(limit).is_integer() else str(limit)


@dataclass(frozen=True)
class Dimension:
    """Thresholds for one input, checked most severe first; first match wins."""

    field: str
    thresholds: Sequence[Threshold]

    def evaluate(self, value: float) -> Optional[MatchedRule]:
        for threshold in self.thresholds:
            if threshold.matches(value):
                return MatchedRule(
                    id=threshold.rule_id,
                    severity=threshold.severity,
                    rationale=f"{self.field}{threshold.op}{_fmt(threshold.limit)}",
                )
        return None


RAIN = Dimension(
    "rain_1h_mm",
    (
        Threshold("RAIN_20MM_1H", Severity.CRITICAL, 20, ">="),
        Threshold("RAIN_8MM_1H", Severity.ALERT, 8, ">="),
    ),
)
WIND = Dimension(
    "wind_ms",
    (
        Threshold("WIND_20MS", Severity.CRITICAL, 20, ">="),
        Threshold("WIND_12MS", Severity.ALERT, 12, ">="),
    ),
)
HEAT = Dimension(
    "temp_c",
    (
        Threshold("TEMP_38C", Severity.CRITICAL, 38, ">="),
        Threshold("TEMP_33C", Severity.ALERT, 33, ">="),
    ),
)
COLD = Dimension(
    "temp_c",
    (
        Threshold("TEMP_-3C", Severity.CRITICAL, -3, "<="),
        Threshold("TEMP_2C", Severity.ALERT, 2, "<="),
    ),
)


class RiskRuleEngine:
    """Maps a weather reading to a classification and its matched rules.

    Pure: no I/O, no clock, no state. The returned rule list is sorted by id
    so that ledger payloads hash identically regardless of evaluation order.

    A missing or non-finite temperature cannot be compared against the heat
    and cold thresholds. Instead of letting it pass as NORMAL, the engine
    records ``TEMP_UNKNOWN`` at ALERT severity.
    """

    dimensions = (RAIN, WIND, HEAT, COLD)

    def decide(
        self,
        temp_c: Optional[float],
        wind_ms: float,
        rain_1h_mm: float,
    ) -> DecisionRecord:
        """Evaluate all rule dimensions for one reading."""
        for name, value in (("wind_ms", wind_ms), ("rain_1h_mm", rain_1h_mm)):
            if value is None or not math.isfinite(value):
                raise ValueError(f"{name} must be a finite number, got {value!r}")
        if temp_c is not None and not math.isfinite(temp_c):
            temp_c = None

        logger.debug(
            "Rule evaluation start",
            extra={"temp_c": temp_c, "wind_ms": wind_ms, "rain_1h_mm": rain_1h_mm},
        )

        values = {"temp_c": temp_c, "wind_ms": wind_ms, "rain_1h_mm": rain_1h_mm}
        matched: List[MatchedRule] = []
        for dimension in self.dimensions:
            value = values[dimension.field]
            if value is None:
                continue
            rule = dimension.evaluate(value)
            if rule is not None:
                matched.append(rule)

        if temp_c is None:
            matched.append(
                MatchedRule(
                    id=TEMP_UNKNOWN,
                    severity=Severity.ALERT,
                    rationale="temp_c unavailable",
                )
            )

        decision = Severity.NORMAL
        for rule in matched:
            if rule.severity.rank > decision.rank:
                decision = rule.severity

        matched.sort(key=lambda rule: rule.id)
        record = DecisionRecord(
            decision=decision,
            applied_rule=AppliedRule(
                inputs=DecisionInputs(temp_c=temp_c, wind_ms=wind_ms, rain_1h_mm=rain_1h_mm),
                rules=matched,
            ),
        )
        logger.debug(
            "Rule evaluation result",
            extra={"decision": decision.value, "triggered_rules": record.rule_ids},
        )
        return record
