"""
ReversalService -- compensating operations for reservations and shipments.

Responsibility:
    - revert_line_allocation: release a line's order-bucket reservation.
    - revert_fulfillment_shipment: give shipped stock back (return entries)
      and re-reserve it to the order.
    - cancel_fulfillment: move an unshipped fulfillment's reservations back
      to the order bucket.
    - cancel_order: cancel every unshipped fulfillment, release every line's
      reservation, and close the order.

Architecture position:
    Kernel > Services.  Never edits or deletes ledger rows: every undo is a
    new compensating entry appended through LedgerStore.

Invariants enforced:
    - Clamp before unreserve: the quantity released at a bin is
      min(ledger-implied bucket balance, live snapshot reserved).  The ledger
      figure alone can exceed what the snapshot still holds after concurrent
      activity, and writing it unclamped drives reserved negative.
    - Shipment returns go to the bins the sale entries came from; only the
      part history cannot account for goes to the default location.

Failure modes:
    - IllegalStateTransitionError: reverting an unshipped fulfillment,
      cancelling a shipped one, cancelling an order with shipments.
    - DefaultLocationNotConfiguredError: history is insufficient and no
      location exists at all.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import (
    CancelFulfillmentResult,
    LedgerEntryDraft,
    OrderCancellationResult,
    RevertResult,
    ShipmentReversalResult,
)
from inventory_kernel.domain.fulfillment_lifecycle import (
    FulfillmentAction,
    FulfillmentStatus,
    is_in_flight,
    require_transition,
)
from inventory_kernel.domain.order_status import OrderStatus
from inventory_kernel.domain.references import fulfillment_reference, order_reference
from inventory_kernel.exceptions import IllegalStateTransitionError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.fulfillment import Fulfillment
from inventory_kernel.models.ledger import LedgerEntryKind
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLine
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.entity_loader import EntityLoader
from inventory_kernel.services.ledger_store import LedgerStore
from inventory_kernel.services.order_status_service import OrderStatusService

logger = get_logger("services.reversal")


class ReversalService:
    """
    Compensation engine.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT roll back committed transactions; it appends new entries.
    """

    def __init__(
        self,
        session: Session,
        ledger: LedgerStore,
        loader: EntityLoader,
        status_service: OrderStatusService,
    ):
        self._session = session
        self._ledger = ledger
        self._loader = loader
        self._status = status_service
        self._ledger_selector = LedgerSelector(session)

    # -------------------------------------------------------------------------
    # Line allocation
    # -------------------------------------------------------------------------

    def revert_line_allocation(self, line_id: UUID) -> RevertResult:
        order, line = self._loader.lock_order_for_line(line_id)
        released = self._release_line(order, line)
        self._status.refresh(order)
        return RevertResult(line_id=line.id, unreserved_qty=released)

    def _release_line(self, order: SalesOrder, line: SalesOrderLine) -> int:
        order_ref = order_reference(order.id)
        buckets = self._ledger_selector.reserved_buckets(order_ref, line.id)
        held = {location_id: qty for (_, location_id), qty in buckets.items()}
        snapshots = self._ledger.projector.lock_many(line.product_id, sorted(held, key=str))

        released = 0
        for location_id in sorted(held, key=str):
            ledger_qty = held[location_id]
            snapshot = snapshots.get(location_id)
            live = snapshot.reserved if snapshot is not None else 0
            qty = min(ledger_qty, live)
            if qty < ledger_qty:
                logger.warning(
                    "unreserve_clamped",
                    extra={
                        "line_id": str(line.id),
                        "location_id": str(location_id),
                        "ledger_reserved": ledger_qty,
                        "snapshot_reserved": live,
                    },
                )
            if qty <= 0:
                continue
            self._ledger.append(
                LedgerEntryDraft(
                    product_id=line.product_id,
                    location_id=location_id,
                    kind=LedgerEntryKind.UNRESERVE,
                    change_reserved=-qty,
                    reference_id=order_ref,
                    sales_order_line_id=line.id,
                    notes="allocation reverted",
                )
            )
            released += qty

        line.allocated = max(0, line.allocated - released)
        logger.info(
            "line_allocation_reverted",
            extra={
                "order_id": str(order.id),
                "line_id": str(line.id),
                "unreserved_qty": released,
            },
        )
        return released

    # -------------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------------

    def revert_fulfillment_shipment(self, fulfillment_id: UUID) -> ShipmentReversalResult:
        order, fulfillment = self._loader.lock_fulfillment(fulfillment_id)
        target = require_transition(
            fulfillment.id, fulfillment.status, FulfillmentAction.REVERT_SHIPMENT
        )
        lines = self._loader.lock_lines(order.id)
        order_ref = order_reference(order.id)

        expected: dict[UUID, int] = defaultdict(int)
        for fl in fulfillment.lines:
            if not fl.is_backorder:
                expected[fl.sales_order_line_id] += fl.quantity
        self._ledger.projector.lock_products(lines[line_id].product_id for line_id in expected)

        history = self._ledger_selector.shipped_buckets(fulfillment_reference(fulfillment.id))
        returned_by_line: dict[UUID, int] = defaultdict(int)
        returned = 0
        for (line_id, location_id), shipped_qty in sorted(
            history.items(), key=lambda item: (str(item[0][0]), str(item[0][1]))
        ):
            if line_id not in expected:
                continue
            qty = min(shipped_qty, expected[line_id] - returned_by_line[line_id])
            if qty <= 0:
                continue
            self._return_stock(lines[line_id], location_id, qty, order_ref)
            returned_by_line[line_id] += qty
            returned += qty

        fallback = 0
        for line_id, qty in sorted(expected.items(), key=lambda item: str(item[0])):
            residual = qty - returned_by_line[line_id]
            if residual <= 0:
                continue
            location = self._loader.default_location()
            logger.warning(
                "shipment_return_fallback",
                extra={
                    "fulfillment_id": str(fulfillment.id),
                    "line_id": str(line_id),
                    "location_id": str(location.id),
                    "quantity": residual,
                },
            )
            self._return_stock(lines[line_id], location.id, residual, order_ref)
            fallback += residual
            returned += residual

        fulfillment.status = target.value
        self._status.refresh(order)
        logger.info(
            "fulfillment_shipment_reverted",
            extra={
                "order_id": str(order.id),
                "fulfillment_id": str(fulfillment.id),
                "returned_qty": returned,
                "fallback_qty": fallback,
            },
        )
        return ShipmentReversalResult(
            fulfillment_id=fulfillment.id,
            returned_qty=returned,
            fallback_qty=fallback,
        )

    def _return_stock(
        self,
        line: SalesOrderLine,
        location_id: UUID,
        quantity: int,
        order_ref: str,
    ) -> None:
        self._ledger.append(
            LedgerEntryDraft(
                product_id=line.product_id,
                location_id=location_id,
                kind=LedgerEntryKind.RETURN,
                change_on_hand=quantity,
                change_reserved=quantity,
                reference_id=order_ref,
                sales_order_line_id=line.id,
                notes="shipment reverted",
            )
        )
        restored = min(quantity, line.fulfilled)
        line.fulfilled -= restored
        line.allocated += restored

    # -------------------------------------------------------------------------
    # Fulfillment cancellation
    # -------------------------------------------------------------------------

    def cancel_fulfillment(self, fulfillment_id: UUID) -> CancelFulfillmentResult:
        order, fulfillment = self._loader.lock_fulfillment(fulfillment_id)
        returned = self._cancel(order, fulfillment)
        self._status.refresh(order)
        return CancelFulfillmentResult(fulfillment_id=fulfillment.id, returned_qty=returned)

    def _cancel(self, order: SalesOrder, fulfillment: Fulfillment) -> int:
        target = require_transition(fulfillment.id, fulfillment.status, FulfillmentAction.CANCEL)
        lines = self._loader.lock_lines(order.id)
        order_ref = order_reference(order.id)
        fulfillment_ref = fulfillment_reference(fulfillment.id)

        buckets = self._ledger_selector.reserved_buckets(fulfillment_ref)
        self._ledger.projector.lock_products(lines[line_id].product_id for line_id, _ in buckets)
        returned = 0
        for (line_id, location_id), ledger_qty in sorted(
            buckets.items(),
            key=lambda item: (str(lines[item[0][0]].product_id), str(item[0][1])),
        ):
            line = lines[line_id]
            snapshot = self._ledger.projector.lock(line.product_id, location_id)
            live = snapshot.reserved if snapshot is not None else 0
            qty = min(ledger_qty, live)
            if qty > 0:
                for kind, delta, ref, note in (
                    (LedgerEntryKind.UNRESERVE, -qty, fulfillment_ref, f"returned to {order_ref}"),
                    (LedgerEntryKind.RESERVE, qty, order_ref, f"returned from {fulfillment_ref}"),
                ):
                    self._ledger.append(
                        LedgerEntryDraft(
                            product_id=line.product_id,
                            location_id=location_id,
                            kind=kind,
                            change_reserved=delta,
                            reference_id=ref,
                            sales_order_line_id=line.id,
                            notes=note,
                        )
                    )
                returned += qty
            if qty < ledger_qty:
                # Reservation the snapshot no longer holds is not returned
                line.allocated = max(0, line.allocated - (ledger_qty - qty))
                logger.warning(
                    "unreserve_clamped",
                    extra={
                        "fulfillment_id": str(fulfillment.id),
                        "line_id": str(line.id),
                        "location_id": str(location_id),
                        "ledger_reserved": ledger_qty,
                        "snapshot_reserved": live,
                    },
                )

        fulfillment.status = target.value
        logger.info(
            "fulfillment_cancelled",
            extra={
                "order_id": str(order.id),
                "fulfillment_id": str(fulfillment.id),
                "returned_qty": returned,
            },
        )
        return returned

    # -------------------------------------------------------------------------
    # Order cancellation
    # -------------------------------------------------------------------------

    def cancel_order(self, order_id: UUID) -> OrderCancellationResult:
        order = self._loader.lock_order(order_id)
        current = OrderStatus(order.status)
        if current in (OrderStatus.CANCELLED, OrderStatus.COMPLETED):
            raise IllegalStateTransitionError("sales_order", order.id, current.value, "cancel")

        fulfillments = self._loader.fulfillments_for_order(order.id)
        if any(FulfillmentStatus(f.status) == FulfillmentStatus.SHIPPED for f in fulfillments):
            raise IllegalStateTransitionError(
                "sales_order", order.id, current.value, "cancel with shipped fulfillments"
            )

        lines = self._loader.lock_lines(order.id)
        self._ledger.projector.lock_products(line.product_id for line in lines.values())

        cancelled = 0
        for fulfillment in fulfillments:
            if is_in_flight(fulfillment.status):
                self._cancel(order, fulfillment)
                cancelled += 1

        released = 0
        for line in sorted(lines.values(), key=lambda l: str(l.id)):
            released += self._release_line(order, line)

        self._status.cancel(order)
        return OrderCancellationResult(
            order_id=order.id,
            cancelled_fulfillments=cancelled,
            unreserved_qty=released,
        )
