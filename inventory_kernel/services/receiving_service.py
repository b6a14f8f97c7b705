"""
ReceivingService -- physical stock movements that are not order driven.

Responsibility:
    Receipts, purchase-order bookings (on-order), receipt reversal, cycle
    count adjustments and bin-to-bin transfers.  Each is one or two ledger
    entries appended through LedgerStore.

Architecture position:
    Kernel > Services.  Receiving collaborators (goods-in, purchasing, stock
    takes) call these through InventoryOperations.

Invariants enforced:
    - Quantities are positive where a direction is implied (receipt, PO,
      transfer); an adjustment delta is non-zero.
    - Only unreserved stock can be transferred; reserved units stay in the
      bin they were promised from.
    - A receipt that clears on-order never clears more than is on order.

Failure modes:
    - InvalidQuantityError, ProductNotFoundError, LocationNotFoundError.
    - ReferenceNotFoundError: revert_receipt for a reference without receipts.
    - InvariantViolationError: e.g. reverting a receipt whose stock has
      already been shipped.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import (
    LedgerEntryDraft,
    ReceiptReversalResult,
    StockMovementResult,
    TransferResult,
)
from inventory_kernel.exceptions import InvalidQuantityError, ReferenceNotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.ledger import LedgerEntryKind
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.entity_loader import EntityLoader
from inventory_kernel.services.ledger_store import LedgerStore

logger = get_logger("services.receiving")


class ReceivingService:
    """Receipts, purchase orders, adjustments, transfers."""

    def __init__(self, session: Session, ledger: LedgerStore, loader: EntityLoader):
        self._session = session
        self._ledger = ledger
        self._loader = loader
        self._ledger_selector = LedgerSelector(session)

    def _require_positive(self, quantity: int, what: str) -> None:
        if quantity <= 0:
            raise InvalidQuantityError(quantity, f"{what} quantity must be positive")

    def book_receipt(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        reference_id: str | None = None,
        clears_on_order: bool = False,
    ) -> StockMovementResult:
        """Add received units to on-hand, optionally clearing on-order."""
        self._require_positive(quantity, "receipt")
        self._loader.require_product(product_id)
        self._loader.require_location(location_id)

        cleared = 0
        if clears_on_order:
            snapshot = self._ledger.projector.lock(product_id, location_id)
            cleared = min(quantity, snapshot.on_order) if snapshot is not None else 0

        entry_id = self._ledger.append(
            LedgerEntryDraft(
                product_id=product_id,
                location_id=location_id,
                kind=LedgerEntryKind.RECEIPT,
                change_on_hand=quantity,
                change_on_order=-cleared,
                reference_id=reference_id,
            )
        )
        logger.info(
            "receipt_booked",
            extra={
                "product_id": str(product_id),
                "location_id": str(location_id),
                "quantity": quantity,
                "on_order_cleared": cleared,
            },
        )
        return StockMovementResult(entry_id=entry_id, quantity=quantity)

    def book_purchase_order(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        reference_id: str | None = None,
    ) -> StockMovementResult:
        """Record incoming supply (on-order) for a bin."""
        self._require_positive(quantity, "purchase order")
        self._loader.require_product(product_id)
        self._loader.require_location(location_id)

        entry_id = self._ledger.append(
            LedgerEntryDraft(
                product_id=product_id,
                location_id=location_id,
                kind=LedgerEntryKind.PURCHASE_ORDER,
                change_on_order=quantity,
                reference_id=reference_id,
            )
        )
        logger.info(
            "purchase_order_booked",
            extra={
                "product_id": str(product_id),
                "location_id": str(location_id),
                "quantity": quantity,
            },
        )
        return StockMovementResult(entry_id=entry_id, quantity=quantity)

    def revert_receipt(self, reference_id: str) -> ReceiptReversalResult:
        """
        Remove the stock booked by receipts under ``reference_id``.

        Receipts already reverted (adjustments under the same reference) are
        netted out, so reverting twice is harmless.
        """
        balances, found = self._ledger_selector.receipt_balances(reference_id)
        if not found:
            raise ReferenceNotFoundError(reference_id, LedgerEntryKind.RECEIPT.value)
        self._ledger.projector.lock_products(product_id for product_id, _ in balances)

        reverted = 0
        for (product_id, location_id), quantity in sorted(
            balances.items(), key=lambda item: (str(item[0][0]), str(item[0][1]))
        ):
            self._ledger.append(
                LedgerEntryDraft(
                    product_id=product_id,
                    location_id=location_id,
                    kind=LedgerEntryKind.ADJUSTMENT,
                    change_on_hand=-quantity,
                    reference_id=reference_id,
                    notes="receipt reverted",
                )
            )
            reverted += quantity

        logger.info(
            "receipt_reverted",
            extra={"reference_id": reference_id, "reverted_qty": reverted},
        )
        return ReceiptReversalResult(reference_id=reference_id, reverted_qty=reverted)

    def adjust_stock(
        self,
        product_id: UUID,
        location_id: UUID,
        delta: int,
        reason: str,
        reference_id: str | None = None,
    ) -> StockMovementResult:
        """Cycle count correction: signed change to on-hand."""
        if delta == 0:
            raise InvalidQuantityError(delta, "adjustment delta must be non-zero")
        self._loader.require_product(product_id)
        self._loader.require_location(location_id)

        entry_id = self._ledger.append(
            LedgerEntryDraft(
                product_id=product_id,
                location_id=location_id,
                kind=LedgerEntryKind.ADJUSTMENT,
                change_on_hand=delta,
                reference_id=reference_id,
                notes=reason,
            )
        )
        logger.info(
            "stock_adjusted",
            extra={
                "product_id": str(product_id),
                "location_id": str(location_id),
                "delta": delta,
                "reason": reason,
            },
        )
        return StockMovementResult(entry_id=entry_id, quantity=delta)

    def transfer_stock(
        self,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity: int,
        reference_id: str | None = None,
    ) -> TransferResult:
        """Move unreserved units between bins."""
        self._require_positive(quantity, "transfer")
        if from_location_id == to_location_id:
            raise InvalidQuantityError(quantity, "source and destination are the same location")
        self._loader.require_product(product_id)
        self._loader.require_location(from_location_id)
        self._loader.require_location(to_location_id)

        snapshots = self._ledger.projector.lock_many(
            product_id, sorted([from_location_id, to_location_id], key=str)
        )
        source = snapshots.get(from_location_id)
        available = source.available if source is not None else 0
        if quantity > available:
            raise InvalidQuantityError(
                quantity, f"exceeds unreserved stock {available} at source location"
            )

        out_id = self._ledger.append(
            LedgerEntryDraft(
                product_id=product_id,
                location_id=from_location_id,
                kind=LedgerEntryKind.TRANSFER,
                change_on_hand=-quantity,
                reference_id=reference_id,
                notes=f"to {to_location_id}",
            )
        )
        in_id = self._ledger.append(
            LedgerEntryDraft(
                product_id=product_id,
                location_id=to_location_id,
                kind=LedgerEntryKind.TRANSFER,
                change_on_hand=quantity,
                reference_id=reference_id,
                notes=f"from {from_location_id}",
            )
        )
        logger.info(
            "stock_transferred",
            extra={
                "product_id": str(product_id),
                "from_location_id": str(from_location_id),
                "to_location_id": str(to_location_id),
                "quantity": quantity,
            },
        )
        return TransferResult(from_entry_id=out_id, to_entry_id=in_id, quantity=quantity)
