"""Domain errors raised by the ledger, rule and projection services."""

from typing import Optional


class ClimaRiskError(Exception):
    """Base class for all ClimaRisk domain errors."""


class EncodingError(ClimaRiskError):
    """Value cannot be canonicalized (cyclic or unsupported type)."""


class InvalidPayloadError(ClimaRiskError):
    """Payload does not match the schema registered for its event type."""

    def __init__(self, event_type: str, detail: str):
        self.event_type = event_type
        self.detail = detail
        super().__init__(f"Invalid payload for {event_type}: {detail}")


class AppendConflictError(ClimaRiskError):
    """A concurrent append won the race for the same predecessor hash."""

    def __init__(self, event_type: str, prev_hash: Optional[str]):
        self.event_type = event_type
        self.prev_hash = prev_hash
        super().__init__(
            f"Ledger append conflict for {event_type} on prev_hash={prev_hash}"
        )


class NotFoundError(ClimaRiskError):
    """Referenced entity is missing or inactive."""

    def __init__(self, entity_id):
        self.entity_id = entity_id
        super().__init__(f"Entity {entity_id} not found or inactive")


class UpstreamUnavailable(ClimaRiskError):
    """Sensor source could not deliver a reading."""


class IntegrityViolation(dict):
    """One verifier finding. Reported in the audit result, never raised."""

    def __init__(self, event_id, error: str, **details):
        super().__init__(id=str(event_id), error=error, **details)

    @property
    def error(self) -> str:
        return self["error"]
