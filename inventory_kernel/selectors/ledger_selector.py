"""
Module: inventory_kernel.selectors.ledger_selector
Responsibility: Read-only folds over the inventory ledger: reservation
    buckets per reference, shipment history, receipt history, and the full
    per-key and per-line folds used by reconciliation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Folds are computed from LedgerEntry rows only; they never consult the
      snapshot or line caches they are used to verify.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import LedgerEntryRecord
from inventory_kernel.models.ledger import LedgerEntry, LedgerEntryKind
from inventory_kernel.selectors.base import BaseSelector

# (line id or None, location id) -> quantity
BucketBalances = dict[tuple[UUID | None, UUID], int]


class LedgerSelector(BaseSelector):
    """Ledger queries."""

    def entries_for_reference(self, reference_id: str) -> list[LedgerEntryRecord]:
        """All entries written under a reference, in append order."""
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.reference_id == reference_id)
            .order_by(LedgerEntry.seq)
        ).scalars().all()
        return [LedgerEntryRecord.from_model(row) for row in rows]

    def entries_for_line(self, line_id: UUID) -> list[LedgerEntryRecord]:
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.sales_order_line_id == line_id)
            .order_by(LedgerEntry.seq)
        ).scalars().all()
        return [LedgerEntryRecord.from_model(row) for row in rows]

    def reserved_buckets(
        self,
        reference_id: str,
        line_id: UUID | None = None,
    ) -> BucketBalances:
        """
        Ledger-implied reservation held under a reference, per (line, location).

        Only positive balances are returned.  These are the figures that must
        be clamped to the live snapshot before anything is unreserved.
        """
        query = (
            select(
                LedgerEntry.sales_order_line_id,
                LedgerEntry.location_id,
                func.sum(LedgerEntry.change_reserved),
            )
            .where(LedgerEntry.reference_id == reference_id)
            .group_by(LedgerEntry.sales_order_line_id, LedgerEntry.location_id)
        )
        if line_id is not None:
            query = query.where(LedgerEntry.sales_order_line_id == line_id)

        return {
            (row_line, location_id): int(total)
            for row_line, location_id, total in self.session.execute(query).all()
            if total and total > 0
        }

    def shipped_buckets(self, reference_id: str) -> BucketBalances:
        """Units shipped per (line, location): the sale entries under the reference."""
        rows = self.session.execute(
            select(
                LedgerEntry.sales_order_line_id,
                LedgerEntry.location_id,
                func.sum(LedgerEntry.change_on_hand),
            )
            .where(
                LedgerEntry.reference_id == reference_id,
                LedgerEntry.kind == LedgerEntryKind.SALE.value,
            )
            .group_by(LedgerEntry.sales_order_line_id, LedgerEntry.location_id)
        ).all()
        return {
            (row_line, location_id): -int(total)
            for row_line, location_id, total in rows
            if total and total < 0
        }

    def receipt_balances(self, reference_id: str) -> tuple[dict[tuple[UUID, UUID], int], bool]:
        """
        Net received quantity per (product, location) under a receipt reference.

        Nets receipt entries against adjustments booked under the same
        reference (earlier reversals).  The flag tells whether any receipt
        entry exists at all.
        """
        rows = self.session.execute(
            select(
                LedgerEntry.product_id,
                LedgerEntry.location_id,
                LedgerEntry.kind,
                func.sum(LedgerEntry.change_on_hand),
            )
            .where(
                LedgerEntry.reference_id == reference_id,
                LedgerEntry.kind.in_(
                    [LedgerEntryKind.RECEIPT.value, LedgerEntryKind.ADJUSTMENT.value]
                ),
            )
            .group_by(LedgerEntry.product_id, LedgerEntry.location_id, LedgerEntry.kind)
        ).all()

        found = False
        net: dict[tuple[UUID, UUID], int] = defaultdict(int)
        for product_id, location_id, kind, total in rows:
            if kind == LedgerEntryKind.RECEIPT.value:
                found = True
            net[(product_id, location_id)] += int(total or 0)
        return {key: qty for key, qty in net.items() if qty > 0}, found

    def fold_balances(self) -> dict[tuple[UUID, UUID], tuple[int, int, int, int]]:
        """(product, location) -> (on_hand, reserved, on_order, last seq)."""
        rows = self.session.execute(
            select(
                LedgerEntry.product_id,
                LedgerEntry.location_id,
                func.coalesce(func.sum(LedgerEntry.change_on_hand), 0),
                func.coalesce(func.sum(LedgerEntry.change_reserved), 0),
                func.coalesce(func.sum(LedgerEntry.change_on_order), 0),
                func.max(LedgerEntry.seq),
            ).group_by(LedgerEntry.product_id, LedgerEntry.location_id)
        ).all()
        return {
            (product_id, location_id): (int(on_hand), int(reserved), int(on_order), int(seq))
            for product_id, location_id, on_hand, reserved, on_order, seq in rows
        }

    def line_attribution(self) -> dict[UUID, tuple[int, int]]:
        """
        line id -> (allocated, fulfilled) implied by the ledger.

        allocated is the net reserved delta attributed to the line (order and
        fulfillment buckets together); fulfilled is the net on-hand removed by
        sales and given back by returns.
        """
        rows = self.session.execute(
            select(
                LedgerEntry.sales_order_line_id,
                LedgerEntry.kind,
                func.coalesce(func.sum(LedgerEntry.change_reserved), 0),
                func.coalesce(func.sum(LedgerEntry.change_on_hand), 0),
            )
            .where(LedgerEntry.sales_order_line_id.is_not(None))
            .group_by(LedgerEntry.sales_order_line_id, LedgerEntry.kind)
        ).all()

        totals: dict[UUID, list[int]] = defaultdict(lambda: [0, 0])
        for line_id, kind, reserved, on_hand in rows:
            totals[line_id][0] += int(reserved)
            if kind in (LedgerEntryKind.SALE.value, LedgerEntryKind.RETURN.value):
                totals[line_id][1] -= int(on_hand)
        return {line_id: (values[0], values[1]) for line_id, values in totals.items()}

    def last_seq(self) -> int:
        return int(self.session.execute(select(func.coalesce(func.max(LedgerEntry.seq), 0))).scalar_one())
