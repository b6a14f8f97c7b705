"""
SequenceService -- named number sources for ledger seq and fulfillment numbers.

On backends with SEQUENCE support (PostgreSQL) each name maps to a database
sequence and ``next_value`` is a plain ``nextval``: no row is locked, so two
transactions touching different stock keys never wait on each other here.
Values are strictly increasing in allocation order; a rolled-back
transaction leaves a gap.

Elsewhere (SQLite) each name is one ``sequence_counters`` row, read
``FOR UPDATE`` and bumped in the caller's transaction.  The first use of a
name inserts the row inside a savepoint; when a concurrent transaction wins
that insert, the savepoint is discarded and the winner's row is locked
instead.

Values are never derived from ``MAX(seq) + 1``.
"""

from sqlalchemy import Sequence, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sequence import (
    FULFILLMENT_NUMBER_SEQ,
    LEDGER_SEQ,
    SequenceCounter,
)

logger = get_logger("services.sequence")


class SequenceService:
    """Hands out strictly increasing integers per name.  Never commits."""

    LEDGER_ENTRY = "inventory_ledger"
    FULFILLMENT_NUMBER = "fulfillment_number"

    _SEQUENCES: dict[str, Sequence] = {
        LEDGER_ENTRY: LEDGER_SEQ,
        FULFILLMENT_NUMBER: FULFILLMENT_NUMBER_SEQ,
    }

    def __init__(self, session: Session):
        self._session = session

    def _uses_sequences(self) -> bool:
        return self._session.get_bind().dialect.supports_sequences

    def _lock(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter:
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=name, current_value=0)
        try:
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            existing = self._lock(name)
            if existing is None:
                raise
            return existing
        savepoint.commit()
        return counter

    def _next_counter_value(self, name: str) -> int:
        counter = self._lock(name) or self._create(name)
        counter.current_value += 1
        self._session.flush()
        return counter.current_value

    def next_value(self, name: str) -> int:
        sequence = self._SEQUENCES.get(name)
        if sequence is not None and self._uses_sequences():
            value = int(self._session.execute(select(sequence.next_value())).scalar_one())
        else:
            value = self._next_counter_value(name)
        logger.debug("sequence_allocated", extra={"sequence_name": name, "value": value})
        return value
