"""
FulfillmentService -- moves reservations into shipment units and ships them.

Responsibility:
    create_fulfillment: for each requested line, first moves the order's own
    reservations into the fulfillment at the same bins (paired unreserve from
    the order bucket + reserve into the fulfillment bucket), then tops up from
    free stock largest-bin-first, and records any unmet remainder as a
    location-less backorder line.  Also drives the fulfillment lifecycle
    (picking, packed, shipped) and re-sources backorder lines.

Architecture position:
    Kernel > Services.  Uses LedgerStore for every balance change,
    AllocationService for free-stock reservation and OrderStatusService for
    the status refresh at the end of each operation.

Invariants enforced:
    - A move preserves total reserved stock system-wide: the unreserve and
      reserve entries of a pair cancel out on the snapshot.
    - Movable quantity per bin is clamped to the live snapshot's reserved.
    - Requested quantity never exceeds ordered - fulfilled - in-flight.
    - Unmet demand is never dropped: it becomes a NULL-location line.
    - A fulfillment with backorder lines cannot ship.

Failure modes:
    - InvalidQuantityError, OrderLineNotFoundError,
      QuantityExceedsOutstandingError: validation, before any write.
    - IllegalStateTransitionError: lifecycle violations.
    - InvariantViolationError: from the projector (rolls everything back).
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.allocation import BinCandidate, plan_allocation
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BackorderSourcingResult,
    FulfillmentItem,
    FulfillmentResult,
    FulfillmentTransitionResult,
    LedgerEntryDraft,
    ShipmentResult,
)
from inventory_kernel.domain.fulfillment_lifecycle import (
    FulfillmentAction,
    FulfillmentStatus,
    require_transition,
)
from inventory_kernel.domain.order_status import OrderStatus
from inventory_kernel.domain.references import fulfillment_reference, order_reference
from inventory_kernel.exceptions import (
    IllegalStateTransitionError,
    InvalidQuantityError,
    OrderLineNotFoundError,
    QuantityExceedsOutstandingError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.fulfillment import Fulfillment, FulfillmentLine
from inventory_kernel.models.ledger import LedgerEntryKind
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLine
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.entity_loader import EntityLoader
from inventory_kernel.services.ledger_store import LedgerStore
from inventory_kernel.services.order_status_service import OrderStatusService
from inventory_kernel.services.sequence_service import SequenceService

logger = get_logger("services.fulfillment")


class FulfillmentService:
    """
    Fulfillment reallocator and lifecycle.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Reversals (cancel, un-ship) live in ReversalService.
    """

    def __init__(
        self,
        session: Session,
        ledger: LedgerStore,
        loader: EntityLoader,
        status_service: OrderStatusService,
        allocation_service: AllocationService,
        clock: Clock | None = None,
        number_prefix: str = "FUL",
    ):
        self._session = session
        self._ledger = ledger
        self._loader = loader
        self._status = status_service
        self._allocation = allocation_service
        self._clock = clock or SystemClock()
        self._number_prefix = number_prefix
        self._sequences = SequenceService(session)
        self._ledger_selector = LedgerSelector(session)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_fulfillment(self, order_id: UUID, items: list[FulfillmentItem]) -> FulfillmentResult:
        if not items:
            raise InvalidQuantityError(0, "a fulfillment needs at least one item")

        order = self._loader.lock_order(order_id)
        if OrderStatus(order.status) == OrderStatus.COMPLETED:
            raise IllegalStateTransitionError(
                "sales_order", order.id, order.status, "create fulfillment"
            )
        self._status.require_open(order, "create fulfillment")

        requested: dict[UUID, int] = {}
        for item in items:
            if item.quantity <= 0:
                raise InvalidQuantityError(item.quantity, "fulfillment quantity must be positive")
            requested[item.line_id] = requested.get(item.line_id, 0) + item.quantity

        lines = self._loader.lock_lines(order.id)
        in_flight = self._status.in_flight_by_line(order.id)
        for line_id, quantity in requested.items():
            line = lines.get(line_id)
            if line is None:
                raise OrderLineNotFoundError(line_id, order_id=order.id)
            outstanding = line.ordered - line.fulfilled - in_flight.get(line_id, 0)
            if quantity > outstanding:
                raise QuantityExceedsOutstandingError(line_id, quantity, max(outstanding, 0))
        self._ledger.projector.lock_products(lines[line_id].product_id for line_id in requested)

        number = self._next_number()
        fulfillment = Fulfillment(
            order_id=order.id,
            fulfillment_number=number,
            status=FulfillmentStatus.DRAFT.value,
        )
        self._session.add(fulfillment)
        self._session.flush()

        moved = newly = backordered = 0
        for line_id, quantity in requested.items():
            line = lines[line_id]
            line_moved, line_new, placed = self._source(order, fulfillment, line, quantity)
            for location_id, qty in placed.items():
                self._add_line(fulfillment, line.id, location_id, qty)
            unmet = quantity - line_moved - line_new
            if unmet > 0:
                self._add_line(fulfillment, line.id, None, unmet)
            moved += line_moved
            newly += line_new
            backordered += unmet

        self._status.refresh(order)
        logger.info(
            "fulfillment_created",
            extra={
                "order_id": str(order.id),
                "fulfillment_id": str(fulfillment.id),
                "fulfillment_number": number,
                "moved_qty": moved,
                "newly_reserved_qty": newly,
                "backordered_qty": backordered,
            },
        )
        return FulfillmentResult(
            fulfillment_id=fulfillment.id,
            fulfillment_number=number,
            moved_qty=moved,
            newly_reserved_qty=newly,
            backordered_qty=backordered,
        )

    def _next_number(self) -> str:
        value = self._sequences.next_value(SequenceService.FULFILLMENT_NUMBER)
        return f"{self._number_prefix}-{value:06d}"

    def _source(
        self,
        order: SalesOrder,
        fulfillment: Fulfillment,
        line: SalesOrderLine,
        quantity: int,
    ) -> tuple[int, int, dict[UUID, int]]:
        """
        Put up to ``quantity`` units of a line into a fulfillment.

        Returns:
            (moved from the order bucket, newly reserved from free stock,
             quantity per location).
        """
        order_ref = order_reference(order.id)
        fulfillment_ref = fulfillment_reference(fulfillment.id)
        placed: dict[UUID, int] = defaultdict(int)
        remaining = quantity

        # 1. The order's own reservation for this line, at the same bins
        held = {
            location_id: qty
            for (_, location_id), qty in self._ledger_selector.reserved_buckets(
                order_ref, line.id
            ).items()
        }
        snapshots = self._ledger.projector.lock_many(line.product_id, sorted(held, key=str))
        movable = [
            BinCandidate(location_id, min(qty, snapshots[location_id].reserved))
            for location_id, qty in held.items()
            if location_id in snapshots
        ]
        moved = 0
        for draw in plan_allocation(movable, remaining):
            self._move_reservation(
                line, draw.location_id, draw.quantity, order_ref, fulfillment_ref
            )
            placed[draw.location_id] += draw.quantity
            moved += draw.quantity
        remaining -= moved

        # 2. Free stock, bounded so the line never commits more than ordered
        newly = 0
        if remaining > 0:
            headroom = max(0, line.ordered - line.fulfilled - line.allocated)
            draws = self._allocation.reserve_free_stock(
                line.product_id,
                min(remaining, headroom),
                fulfillment_ref,
                line.id,
            )
            for draw in draws:
                placed[draw.location_id] += draw.quantity
                newly += draw.quantity
            line.allocated += newly

        if moved or newly:
            logger.debug(
                "fulfillment_line_sourced",
                extra={
                    "fulfillment_id": str(fulfillment.id),
                    "line_id": str(line.id),
                    "moved_qty": moved,
                    "newly_reserved_qty": newly,
                    "requested_qty": quantity,
                },
            )
        return moved, newly, dict(placed)

    def _move_reservation(
        self,
        line: SalesOrderLine,
        location_id: UUID,
        quantity: int,
        from_ref: str,
        to_ref: str,
    ) -> None:
        """Paired unreserve/reserve between two buckets at one bin."""
        self._ledger.append(
            LedgerEntryDraft(
                product_id=line.product_id,
                location_id=location_id,
                kind=LedgerEntryKind.UNRESERVE,
                change_reserved=-quantity,
                reference_id=from_ref,
                sales_order_line_id=line.id,
                notes=f"moved to {to_ref}",
            )
        )
        self._ledger.append(
            LedgerEntryDraft(
                product_id=line.product_id,
                location_id=location_id,
                kind=LedgerEntryKind.RESERVE,
                change_reserved=quantity,
                reference_id=to_ref,
                sales_order_line_id=line.id,
                notes=f"moved from {from_ref}",
            )
        )

    def _add_line(
        self,
        fulfillment: Fulfillment,
        line_id: UUID,
        location_id: UUID | None,
        quantity: int,
    ) -> FulfillmentLine:
        for existing in fulfillment.lines:
            if existing.sales_order_line_id == line_id and existing.location_id == location_id:
                existing.quantity += quantity
                return existing
        fulfillment_line = FulfillmentLine(
            sales_order_line_id=line_id,
            location_id=location_id,
            quantity=quantity,
        )
        fulfillment.lines.append(fulfillment_line)
        return fulfillment_line

    # -------------------------------------------------------------------------
    # Backorders
    # -------------------------------------------------------------------------

    def source_backorders(self, fulfillment_id: UUID) -> BackorderSourcingResult:
        """Try to source a fulfillment's backorder lines again."""
        order, fulfillment = self._loader.lock_fulfillment(fulfillment_id)
        require_transition(fulfillment.id, fulfillment.status, FulfillmentAction.SOURCE_BACKORDERS)
        lines = self._loader.lock_lines(order.id)

        sourced = 0
        backorders = sorted(
            (fl for fl in fulfillment.lines if fl.is_backorder),
            key=lambda fl: str(fl.sales_order_line_id),
        )
        self._ledger.projector.lock_products(
            lines[fl.sales_order_line_id].product_id for fl in backorders
        )
        for backorder in backorders:
            line = lines[backorder.sales_order_line_id]
            moved, newly, placed = self._source(order, fulfillment, line, backorder.quantity)
            got = moved + newly
            if not got:
                continue
            for location_id, qty in placed.items():
                self._add_line(fulfillment, line.id, location_id, qty)
            backorder.quantity -= got
            if backorder.quantity == 0:
                fulfillment.lines.remove(backorder)
            sourced += got

        self._session.flush()
        remaining = sum(fl.quantity for fl in fulfillment.lines if fl.is_backorder)
        self._status.refresh(order)
        logger.info(
            "backorders_sourced",
            extra={
                "fulfillment_id": str(fulfillment.id),
                "sourced_qty": sourced,
                "backordered_qty": remaining,
            },
        )
        return BackorderSourcingResult(
            fulfillment_id=fulfillment.id,
            sourced_qty=sourced,
            backordered_qty=remaining,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def transition(self, fulfillment_id: UUID, action: FulfillmentAction) -> FulfillmentTransitionResult:
        """Status-only moves: start_picking, mark_packed."""
        order, fulfillment = self._loader.lock_fulfillment(fulfillment_id)
        current = fulfillment.status
        target = require_transition(fulfillment.id, current, action)
        fulfillment.status = target.value
        self._status.refresh(order)
        logger.info(
            "fulfillment_status_changed",
            extra={
                "fulfillment_id": str(fulfillment.id),
                "from_status": FulfillmentStatus(current).value,
                "to_status": target.value,
            },
        )
        return FulfillmentTransitionResult(fulfillment_id=fulfillment.id, status=target.value)

    def ship_fulfillment(self, fulfillment_id: UUID) -> ShipmentResult:
        """
        Deduct on-hand and reserved at each recorded bin and mark shipped.

        Raises:
            IllegalStateTransitionError: If already shipped or cancelled, or
                if any line is still a backorder.
        """
        order, fulfillment = self._loader.lock_fulfillment(fulfillment_id)
        require_transition(fulfillment.id, fulfillment.status, FulfillmentAction.SHIP)
        if fulfillment.has_backorders:
            raise IllegalStateTransitionError(
                "fulfillment", fulfillment.id, fulfillment.status, "ship with backordered lines"
            )

        lines = self._loader.lock_lines(order.id)
        fulfillment_ref = fulfillment_reference(fulfillment.id)
        self._ledger.projector.lock_products(
            lines[fl.sales_order_line_id].product_id for fl in fulfillment.lines
        )

        shipped = 0
        for fl in sorted(
            fulfillment.lines,
            key=lambda fl: (str(lines[fl.sales_order_line_id].product_id), str(fl.location_id)),
        ):
            line = lines[fl.sales_order_line_id]
            self._ledger.append(
                LedgerEntryDraft(
                    product_id=line.product_id,
                    location_id=fl.location_id,
                    kind=LedgerEntryKind.SALE,
                    change_on_hand=-fl.quantity,
                    change_reserved=-fl.quantity,
                    reference_id=fulfillment_ref,
                    sales_order_line_id=line.id,
                )
            )
            line.fulfilled += fl.quantity
            line.allocated = max(0, line.allocated - fl.quantity)
            shipped += fl.quantity

        fulfillment.status = FulfillmentStatus.SHIPPED.value
        fulfillment.shipped_at = self._clock.now()
        self._status.refresh(order)
        logger.info(
            "fulfillment_shipped",
            extra={
                "order_id": str(order.id),
                "fulfillment_id": str(fulfillment.id),
                "shipped_qty": shipped,
            },
        )
        return ShipmentResult(fulfillment_id=fulfillment.id, shipped_qty=shipped)
