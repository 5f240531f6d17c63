"""Ledger event types and their payload schemas.

Every payload is validated against the model registered for its event type
before it is hashed, so the canonical encoder only ever sees JSON-shaped data.
"""

from typing import Any, Dict, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from climarisk_api.errors import InvalidPayloadError
from climarisk_api.policy.schema import AppliedRule, Severity

GENESIS = "GENESIS"
CMD_ENTITY_ADD = "CMD_ENTITY_ADD"
CMD_ENTITY_REFRESH = "CMD_ENTITY_REFRESH"
CMD_ENTITY_RETIRE = "CMD_ENTITY_RETIRE"
DECISION_WEATHER_RISK = "DECISION_WEATHER_RISK"

GENESIS_NOTE = "climarisk genesis"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class GenesisPayload(_Payload):
    note: str


class EntitySnapshot(_Payload):
    id: int
    name: str
    lat: float
    lon: float
    is_active: bool = True


class DecisionEntity(_Payload):
    id: int
    name: str
    lat: float
    lon: float


class EntityAddPayload(_Payload):
    entity: EntitySnapshot


class EntityRefPayload(_Payload):
    entity_id: int


class DecisionPayload(_Payload):
    entity: DecisionEntity
    decision: Severity
    applied_rule: AppliedRule
    raw_input: Dict[str, Any] = Field(default_factory=dict)


EVENT_PAYLOAD_SCHEMAS: Dict[str, Type[_Payload]] = {
    GENESIS: GenesisPayload,
    CMD_ENTITY_ADD: EntityAddPayload,
    CMD_ENTITY_REFRESH: EntityRefPayload,
    CMD_ENTITY_RETIRE: EntityRefPayload,
    DECISION_WEATHER_RISK: DecisionPayload,
}


def genesis_payload() -> dict:
    return {"note": GENESIS_NOTE}


def normalize_payload(event_type: str, payload: Any) -> dict:
    """Validate ``payload`` for ``event_type`` and return its JSON form."""
    schema = EVENT_PAYLOAD_SCHEMAS.get(event_type)
    if schema is None:
        raise InvalidPayloadError(event_type, "unknown event type")
    try:
        model = schema.model_validate(payload)
    except ValidationError as exc:
        raise InvalidPayloadError(event_type, str(exc)) from exc
    return model.model_dump(mode="json")


def parse_payload(event_type: str, payload: Any) -> _Payload:
    """Load a stored payload back into its schema model."""
    schema = EVENT_PAYLOAD_SCHEMAS.get(event_type)
    if schema is None:
        raise InvalidPayloadError(event_type, "unknown event type")
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise InvalidPayloadError(event_type, str(exc)) from exc
