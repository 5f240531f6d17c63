"""Full-chain audit verification."""

import logging
from typing import List

from sqlalchemy.orm import Session

from climarisk_api.errors import EncodingError, IntegrityViolation
from climarisk_api.ledger.canonical import GENESIS_PREV_HASH, compute_event_hash
from climarisk_api.ledger.service import LedgerService
from climarisk_api.utils.metrics import audit_verifications

logger = logging.getLogger(__name__)

HASH_MISMATCH = "hash_mismatch"
GENESIS_PREV_HASH_NOT_ZERO = "genesis_prev_hash_not_zero"
PREV_HASH_LINK_BROKEN = "prev_hash_link_broken"
PAYLOAD_NOT_ENCODABLE = "payload_not_encodable"


class AuditVerifier:
    """Replays the whole ledger and cross-checks every hash link.

    Read-only. Every anomaly is collected; the scan never stops early and
    never raises on corrupted data.
    """

    def __init__(self, db: Session):
        """Initialize verifier."""
        self.db = db
        self.ledger = LedgerService(db)

    def verify(self) -> dict:
        """Return ``{"ok", "count", "errors"}`` for the full chain."""
        errors: List[IntegrityViolation] = []
        count = 0
        previous = None

        for event in self.ledger.iter_events():
            count += 1

            try:
                computed = compute_event_hash(event.prev_hash, event.event_type, event.payload)
            except EncodingError as exc:
                errors.append(IntegrityViolation(event.id, PAYLOAD_NOT_ENCODABLE, detail=str(exc)))
            else:
                if computed != event.event_hash:
                    errors.append(
                        IntegrityViolation(
                            event.id, HASH_MISMATCH, expected=event.event_hash, got=computed
                        )
                    )

            if previous is None:
                if event.prev_hash != GENESIS_PREV_HASH:
                    errors.append(
                        IntegrityViolation(
                            event.id, GENESIS_PREV_HASH_NOT_ZERO, prev_hash=event.prev_hash
                        )
                    )
            elif event.prev_hash != previous.event_hash:
                errors.append(
                    IntegrityViolation(
                        event.id,
                        PREV_HASH_LINK_BROKEN,
                        prev_hash=event.prev_hash,
                        should_be=previous.event_hash,
                    )
                )
            previous = event

        ok = not errors
        audit_verifications.labels(ok=str(ok).lower()).inc()
        if ok:
            logger.info(f"Ledger verified: {count} events")
        else:
            logger.warning(
                f"Ledger verification found {len(errors)} issue(s) in {count} events",
                extra={"errors": [e.error for e in errors]},
            )
        return {"ok": ok, "count": count, "errors": errors}
