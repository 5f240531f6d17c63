"""Audit ledger service with hash chaining."""

import logging
import time
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from climarisk_api.errors import AppendConflictError, InvalidPayloadError
from climarisk_api.ledger.canonical import GENESIS_PREV_HASH, compute_event_hash
from climarisk_api.ledger.events import GENESIS, genesis_payload, normalize_payload
from climarisk_api.models import LedgerEvent
from climarisk_api.models.ledger import utcnow
from climarisk_api.settings import get_settings
from climarisk_api.utils.metrics import ledger_append_conflicts, ledger_appends

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")


class LedgerService:
    """Tamper-evident ledger with a single serialized append point.

    Appends read the latest event and insert its successor inside the
    caller's transaction. On PostgreSQL the pair runs under a transaction
    scoped advisory lock. On every backend the unique ``prev_hash`` and
    ``event_hash`` columns reject a second successor of the same event, which
    surfaces as ``AppendConflictError``; ``run_unit`` retries the whole unit.
    """

    def __init__(
        self,
        db: Session,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        """Initialize ledger service."""
        self.db = db
        self.max_attempts = max_attempts or settings.ledger_append_max_attempts
        self.backoff_seconds = (
            settings.ledger_append_backoff_seconds if backoff_seconds is None else backoff_seconds
        )

    def _acquire_append_lock(self) -> None:
        """Serialize appends across connections until this transaction ends."""
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": settings.ledger_lock_key},
            )

    def last_event(self) -> Optional[LedgerEvent]:
        """Most recently appended event by sequence id."""
        return self.db.scalars(
            select(LedgerEvent).order_by(LedgerEvent.id.desc()).limit(1)
        ).first()

    def get_by_hash(self, event_hash: str) -> Optional[LedgerEvent]:
        """Look up an event by its hash."""
        return self.db.scalars(
            select(LedgerEvent).where(LedgerEvent.event_hash == event_hash)
        ).first()

    def count(self) -> int:
        """Number of events in the ledger."""
        return self.db.scalar(select(func.count()).select_from(LedgerEvent)) or 0

    def iter_events(self, batch_size: int = 500) -> Iterator[LedgerEvent]:
        """All events in ascending sequence order, fetched in keyset pages."""
        last_id = 0
        while True:
            batch = self.db.scalars(
                select(LedgerEvent)
                .where(LedgerEvent.id > last_id)
                .order_by(LedgerEvent.id.asc())
                .limit(batch_size)
            ).all()
            if not batch:
                return
            yield from batch
            last_id = batch[-1].id

    def _insert(self, event_type: str, payload: dict, prev_hash: str) -> LedgerEvent:
        event_hash = compute_event_hash(prev_hash, event_type, payload)
        event = LedgerEvent(
            created_at=utcnow(),
            event_type=event_type,
            payload=payload,
            prev_hash=prev_hash,
            event_hash=event_hash,
        )
        self.db.add(event)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            ledger_append_conflicts.labels(event_type=event_type).inc()
            logger.warning(
                "Ledger append conflict",
                extra={"event_type": event_type, "prev_hash": prev_hash},
            )
            raise AppendConflictError(event_type, prev_hash) from exc

        ledger_appends.labels(event_type=event_type).inc()
        logger.info(
            f"Ledger event appended: {event_type}",
            extra={"event_type": event_type, "ledger_hash": event_hash, "event_id": event.id},
        )
        return event

    def append_event(self, event_type: str, payload: dict) -> LedgerEvent:
        """Append event to ledger with hash chaining.

        Bootstraps the genesis event first when the ledger is empty. Does not
        commit; use ``run_unit`` to commit with conflict retries.
        """
        if event_type == GENESIS:
            raise InvalidPayloadError(GENESIS, "genesis is created by bootstrap only")
        normalized = normalize_payload(event_type, payload)

        self._acquire_append_lock()
        last = self.last_event()
        if last is None:
            last = self._insert(GENESIS, genesis_payload(), GENESIS_PREV_HASH)
        return self._insert(event_type, normalized, last.event_hash)

    def ensure_genesis(self) -> Optional[LedgerEvent]:
        """Create the genesis event if the ledger is empty. Commits.

        Returns the new genesis event, or None when the ledger was already
        initialized (including by a concurrent initializer).
        """

        def bootstrap(ledger: "LedgerService") -> Optional[LedgerEvent]:
            ledger._acquire_append_lock()
            if ledger.last_event() is not None:
                return None
            return ledger._insert(GENESIS, genesis_payload(), GENESIS_PREV_HASH)

        genesis = self.run_unit(bootstrap)
        if genesis is not None:
            logger.info("Ledger genesis created", extra={"ledger_hash": genesis.event_hash})
        return genesis

    def run_unit(self, work: Callable[["LedgerService"], T]) -> T:
        """Run ``work`` and commit it, retrying the whole unit on append conflicts.

        Backoff doubles after each conflict. When attempts are exhausted the
        last ``AppendConflictError`` propagates. Any other error rolls back
        and propagates immediately.
        """
        attempt = 1
        while True:
            try:
                result = work(self)
                self.db.commit()
                return result
            except AppendConflictError as exc:
                self.db.rollback()
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Ledger append failed after {attempt} attempts",
                        extra={"event_type": exc.event_type},
                    )
                    raise
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.info(
                    f"Retrying ledger unit in {delay:.3f}s (attempt {attempt + 1})",
                    extra={"event_type": exc.event_type},
                )
                time.sleep(delay)
                attempt += 1
            except Exception:
                self.db.rollback()
                raise
