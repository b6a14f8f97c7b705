"""
LedgerStore -- append-only inventory ledger.

Responsibility:
    The only writer of LedgerEntry rows.  Each append locks the snapshot,
    draws a monotonic seq, projects the deltas onto the snapshot (same
    transaction), then persists the entry.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by every mutating service.  Calls SequenceService and
    SnapshotProjector.

Invariants enforced:
    - Append-only: there is no update or delete method.
    - Atomic projection: no observer can see an entry without its snapshot
      effect, or vice versa.  A failed projection raises before the entry is
      added to the session.
    - Idempotency: an entry whose idempotency_key already exists is refused
      with DuplicateOperationError carrying the prior entry id.

Failure modes:
    - DuplicateOperationError: key already applied (treat as success).
    - InvariantViolationError: from the projector.
    - IntegrityError on flush: concurrent append with the same key.

Audit relevance:
    Every append is logged (``ledger_entry_appended``) with kind, deltas,
    reference and seq; the ledger itself is the audit timeline.
"""

from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import LedgerEntryDraft
from inventory_kernel.exceptions import DuplicateOperationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.ledger import LedgerEntry
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.services.snapshot_projector import SnapshotProjector

logger = get_logger("services.ledger_store")


class LedgerStore:
    """
    Appends ledger entries and projects them.

    Contract:
        append(draft) -> entry id.

    Guarantees:
        - Inside ``operation_scope(token)``, drafts without their own key get
          the derived key ``"<token>:<n>"`` (n counts appends in the scope),
          so the ledger-wide unique constraint backstops retry races.
        - Entries carry the actor id the store was created with.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        projector: SnapshotProjector | None = None,
        sequence_service: SequenceService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._projector = projector or SnapshotProjector(session, self._clock)
        self._sequences = sequence_service or SequenceService(session)
        self._scope_token: str | None = None
        self._scope_count = 0

    @property
    def projector(self) -> SnapshotProjector:
        return self._projector

    @contextmanager
    def operation_scope(self, token: str | None) -> Iterator[None]:
        """Derive entry keys from ``token`` for appends inside the block."""
        previous = (self._scope_token, self._scope_count)
        self._scope_token, self._scope_count = token, 0
        try:
            yield
        finally:
            self._scope_token, self._scope_count = previous

    def _entry_key(self, draft: LedgerEntryDraft) -> str | None:
        if draft.idempotency_key is not None:
            return draft.idempotency_key
        if self._scope_token is None:
            return None
        self._scope_count += 1
        return f"{self._scope_token}:{self._scope_count}"

    def find_by_key(self, idempotency_key: str) -> LedgerEntry | None:
        return self._session.execute(
            select(LedgerEntry).where(LedgerEntry.idempotency_key == idempotency_key)
        ).scalar_one_or_none()

    def append(self, draft: LedgerEntryDraft) -> UUID:
        """
        Append one entry.

        Raises:
            DuplicateOperationError: If the entry's key was already appended.
            InvariantViolationError: If projection would go negative.
        """
        key = self._entry_key(draft)

        if key is not None:
            existing = self.find_by_key(key)
            if existing is not None:
                logger.info(
                    "ledger_entry_duplicate",
                    extra={"idempotency_key": key, "entry_id": str(existing.id)},
                )
                raise DuplicateOperationError(key, existing_entry_id=existing.id)

        # Lock the snapshot before drawing seq so that, per stock key, seq
        # order matches lock order.
        self._projector.lock_or_create(draft.product_id, draft.location_id)
        seq = self._sequences.next_value(SequenceService.LEDGER_ENTRY)
        self._projector.project(draft, seq)

        entry = LedgerEntry(
            seq=seq,
            product_id=draft.product_id,
            location_id=draft.location_id,
            kind=draft.kind,
            change_on_hand=draft.change_on_hand,
            change_reserved=draft.change_reserved,
            change_on_order=draft.change_on_order,
            reference_id=draft.reference_id,
            sales_order_line_id=draft.sales_order_line_id,
            idempotency_key=key,
            notes=draft.notes,
            actor_id=self._actor_id,
            created_at=self._clock.now(),
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "ledger_entry_appended",
            extra={
                "entry_id": str(entry.id),
                "seq": seq,
                "entry_kind": draft.kind,
                "product_id": str(draft.product_id),
                "location_id": str(draft.location_id),
                "change_on_hand": draft.change_on_hand,
                "change_reserved": draft.change_reserved,
                "change_on_order": draft.change_on_order,
                "reference_id": draft.reference_id,
                "sales_order_line_id": (
                    str(draft.sales_order_line_id) if draft.sales_order_line_id else None
                ),
            },
        )
        return entry.id
