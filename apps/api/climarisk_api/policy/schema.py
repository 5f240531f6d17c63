"""Decision record schema produced by the rule engine."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

DECISION_SCHEMA_VERSION = 1


class Severity(str, Enum):
    """Ordered classification levels."""

    NORMAL = "NORMAL"
    ALERT = "ALERT"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Severity.NORMAL: 0, Severity.ALERT: 1, Severity.CRITICAL: 2}


class MatchedRule(BaseModel):
    """A rule that fired, with an explanation of why."""

    model_config = ConfigDict(frozen=True)

    id: str
    severity: Severity
    rationale: str


class DecisionInputs(BaseModel):
    """Raw numeric inputs the rules were evaluated against."""

    model_config = ConfigDict(frozen=True)

    temp_c: Optional[float] = None  # None when the sensor gave no usable temperature
    wind_ms: float = 0.0
    rain_1h_mm: float = 0.0


class AppliedRule(BaseModel):
    """Explanation block stored with every decision."""

    model_config = ConfigDict(frozen=True)

    version: int = DECISION_SCHEMA_VERSION
    inputs: DecisionInputs
    rules: List[MatchedRule] = Field(default_factory=list)


class DecisionRecord(BaseModel):
    """Classification plus the explainable list of matched rules."""

    model_config = ConfigDict(frozen=True)

    decision: Severity
    applied_rule: AppliedRule

    @property
    def rules(self) -> List[MatchedRule]:
        return self.applied_rule.rules

    @property
    def rule_ids(self) -> List[str]:
        return [rule.id for rule in self.applied_rule.rules]
