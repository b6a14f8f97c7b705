"""
SnapshotProjector -- the single place stock balances change.

Responsibility:
    Folds each new ledger entry into its (product, location) snapshot, in the
    same transaction as the append, and re-checks the non-negativity
    invariant before anything is written.  Also owns locked snapshot reads
    for the services that decide reservations.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerStore.append() (projection) and by the allocation,
    fulfillment and reversal services (locked reads).  No other component
    writes StockSnapshot rows.

Invariants enforced:
    - on_hand >= 0, reserved >= 0, on_order >= 0 after every projection;
      a would-be-negative result raises InvariantViolationError and nothing
      is written.
    - Lock order: snapshot rows are locked in ascending (product_id,
      location_id) order.  Operations that touch several products call
      lock_products() before their first append; single-product reads lock in
      location_id order.  Ledger seq is drawn after the snapshot lock and
      takes no row lock of its own on PostgreSQL.

Failure modes:
    - InvariantViolationError: the entry would drive a balance negative.
      Logged at ERROR; the caller's transaction must be rolled back.
    - IntegrityError on concurrent first-entry for a key: handled with a
      savepoint retry, like SequenceService.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import LedgerEntryDraft
from inventory_kernel.exceptions import InvariantViolationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.product import Location
from inventory_kernel.models.snapshot import StockSnapshot

logger = get_logger("services.snapshot_projector")


class SnapshotProjector:
    """
    Materializes the ledger fold per (product, location).

    Contract:
        project(draft, seq) adds the draft's deltas to the snapshot row for
        its key, creating the row on first use.

    Guarantees:
        - The row is locked before it is read for projection.
        - The invariant is checked on the resulting values before the row
          is mutated, so a failed projection leaves the session unchanged.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT append ledger entries; LedgerStore does.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Locked reads
    # -------------------------------------------------------------------------

    def lock(self, product_id: UUID, location_id: UUID) -> StockSnapshot | None:
        """Lock and return the snapshot for one key, or None if absent."""
        return self._session.execute(
            select(StockSnapshot)
            .where(
                StockSnapshot.product_id == product_id,
                StockSnapshot.location_id == location_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_products(self, product_ids) -> list[StockSnapshot]:
        """
        Lock every existing snapshot of the given products.

        One statement, rows locked in (product_id, location_id) order.  Later
        locks on these rows inside the same transaction do not wait.
        """
        ids = sorted(set(product_ids), key=str)
        if not ids:
            return []
        return list(
            self._session.execute(
                select(StockSnapshot)
                .where(StockSnapshot.product_id.in_(ids))
                .order_by(StockSnapshot.product_id, StockSnapshot.location_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def lock_many(self, product_id: UUID, location_ids: list[UUID]) -> dict[UUID, StockSnapshot]:
        """Lock the snapshots for several locations of one product."""
        if not location_ids:
            return {}
        rows = self._session.execute(
            select(StockSnapshot)
            .where(
                StockSnapshot.product_id == product_id,
                StockSnapshot.location_id.in_(location_ids),
            )
            .order_by(StockSnapshot.location_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {row.location_id: row for row in rows}

    def lock_sellable(self, product_id: UUID) -> list[StockSnapshot]:
        """
        Lock every sellable snapshot of a product that has free stock.

        Rows come back in lock order (ascending location_id); callers rank
        them with domain.allocation.
        """
        return list(
            self._session.execute(
                select(StockSnapshot)
                .join(Location, Location.id == StockSnapshot.location_id)
                .where(
                    StockSnapshot.product_id == product_id,
                    Location.is_sellable.is_(True),
                    StockSnapshot.on_hand > StockSnapshot.reserved,
                )
                .order_by(StockSnapshot.location_id)
                .with_for_update(of=StockSnapshot)
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def lock_or_create(self, product_id: UUID, location_id: UUID) -> StockSnapshot:
        snapshot = self.lock(product_id, location_id)
        if snapshot is not None:
            return snapshot

        savepoint = self._session.begin_nested()
        try:
            snapshot = StockSnapshot(
                product_id=product_id,
                location_id=location_id,
                on_hand=0,
                reserved=0,
                on_order=0,
                last_entry_seq=0,
                updated_at=self._clock.now(),
            )
            self._session.add(snapshot)
            self._session.flush()
            savepoint.commit()
            logger.debug(
                "snapshot_created",
                extra={"product_id": str(product_id), "location_id": str(location_id)},
            )
            return snapshot
        except IntegrityError:
            logger.debug(
                "snapshot_create_race_retry",
                extra={"product_id": str(product_id), "location_id": str(location_id)},
            )
            savepoint.rollback()
            snapshot = self.lock(product_id, location_id)
            if snapshot is None:
                raise
            return snapshot

    # -------------------------------------------------------------------------
    # Projection
    # -------------------------------------------------------------------------

    def project(self, draft: LedgerEntryDraft, seq: int) -> StockSnapshot:
        """
        Fold one entry into its snapshot.

        Raises:
            InvariantViolationError: If any resulting balance is negative.
        """
        snapshot = self.lock_or_create(draft.product_id, draft.location_id)

        on_hand = snapshot.on_hand + draft.change_on_hand
        reserved = snapshot.reserved + draft.change_reserved
        on_order = snapshot.on_order + draft.change_on_order

        if on_hand < 0 or reserved < 0 or on_order < 0:
            logger.error(
                "invariant_violation",
                extra={
                    "product_id": str(draft.product_id),
                    "location_id": str(draft.location_id),
                    "entry_kind": draft.kind,
                    "reference_id": draft.reference_id,
                    "on_hand_before": snapshot.on_hand,
                    "reserved_before": snapshot.reserved,
                    "on_order_before": snapshot.on_order,
                    "change_on_hand": draft.change_on_hand,
                    "change_reserved": draft.change_reserved,
                    "change_on_order": draft.change_on_order,
                },
            )
            raise InvariantViolationError(
                product_id=draft.product_id,
                location_id=draft.location_id,
                on_hand=on_hand,
                reserved=reserved,
                on_order=on_order,
            )

        snapshot.on_hand = on_hand
        snapshot.reserved = reserved
        snapshot.on_order = on_order
        snapshot.last_entry_seq = seq
        snapshot.updated_at = self._clock.now()
        return snapshot

    def rebuild(
        self,
        product_id: UUID,
        location_id: UUID,
        on_hand: int,
        reserved: int,
        on_order: int,
        last_entry_seq: int,
    ) -> StockSnapshot:
        """
        Overwrite a snapshot with a freshly computed ledger fold.

        Used only by reconciliation repair.  The fold itself must satisfy the
        invariant; if it does not, the ledger is corrupt and repair refuses.
        """
        if on_hand < 0 or reserved < 0 or on_order < 0:
            raise InvariantViolationError(
                product_id=product_id,
                location_id=location_id,
                on_hand=on_hand,
                reserved=reserved,
                on_order=on_order,
                reason="ledger fold is negative",
            )
        snapshot = self.lock_or_create(product_id, location_id)
        snapshot.on_hand = on_hand
        snapshot.reserved = reserved
        snapshot.on_order = on_order
        snapshot.last_entry_seq = last_entry_seq
        snapshot.updated_at = self._clock.now()
        logger.warning(
            "snapshot_rebuilt",
            extra={
                "product_id": str(product_id),
                "location_id": str(location_id),
                "on_hand": on_hand,
                "reserved": reserved,
                "on_order": on_order,
            },
        )
        return snapshot
