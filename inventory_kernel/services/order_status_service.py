"""
OrderStatusService -- writes the resolver's verdict to the order row.

Responsibility:
    Loads the aggregates the pure resolver needs (line counters and
    in-flight fulfillment quantity), runs resolve_order_status(), and writes
    the single status field.  Also carries the two explicit order commands
    that the resolver never derives: confirm and cancel.

Architecture position:
    Kernel > Services.  Called at the end of every mutating operation.

Invariants enforced:
    - Never writes ledger entries.
    - Re-running refresh() without intervening changes is a no-op.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.fulfillment_lifecycle import FulfillmentStatus
from inventory_kernel.domain.order_status import (
    LineQuantities,
    OrderAggregates,
    OrderStatus,
    resolve_order_status,
)
from inventory_kernel.exceptions import IllegalStateTransitionError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.fulfillment import Fulfillment, FulfillmentLine
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLine

logger = get_logger("services.order_status")

_IN_FLIGHT = [
    FulfillmentStatus.DRAFT.value,
    FulfillmentStatus.PICKING.value,
    FulfillmentStatus.PACKED.value,
]


class OrderStatusService:
    """Resolves and persists order status."""

    def __init__(self, session: Session):
        self._session = session

    def in_flight_by_line(self, order_id: UUID) -> dict[UUID, int]:
        """Quantity on unshipped, uncancelled fulfillments, per order line."""
        query = (
            select(FulfillmentLine.sales_order_line_id, func.sum(FulfillmentLine.quantity))
            .join(Fulfillment, Fulfillment.id == FulfillmentLine.fulfillment_id)
            .where(
                Fulfillment.order_id == order_id,
                Fulfillment.status.in_(_IN_FLIGHT),
            )
            .group_by(FulfillmentLine.sales_order_line_id)
        )
        return {line_id: int(total) for line_id, total in self._session.execute(query).all()}

    def aggregates(self, order: SalesOrder) -> OrderAggregates:
        lines = self._session.execute(
            select(SalesOrderLine).where(SalesOrderLine.order_id == order.id)
        ).scalars().all()
        in_flight = sum(self.in_flight_by_line(order.id).values())
        return OrderAggregates(
            lines=tuple(
                LineQuantities(ordered=l.ordered, allocated=l.allocated, fulfilled=l.fulfilled)
                for l in lines
            ),
            in_flight_quantity=in_flight,
        )

    def refresh(self, order: SalesOrder) -> OrderStatus:
        """Re-derive and store the order's status."""
        self._session.flush()
        current = OrderStatus(order.status)
        resolved = resolve_order_status(current, self.aggregates(order))
        if resolved != current:
            order.status = resolved.value
            logger.info(
                "order_status_changed",
                extra={
                    "order_id": str(order.id),
                    "from_status": current.value,
                    "to_status": resolved.value,
                },
            )
        return resolved

    def confirm(self, order: SalesOrder) -> OrderStatus:
        """draft -> confirmed, then resolve.  Confirming a confirmed order is a no-op."""
        current = OrderStatus(order.status)
        if current == OrderStatus.CANCELLED:
            raise IllegalStateTransitionError("sales_order", order.id, current.value, "confirm")
        if current == OrderStatus.DRAFT:
            order.status = OrderStatus.CONFIRMED.value
            logger.info("order_confirmed", extra={"order_id": str(order.id)})
        return self.refresh(order)

    def require_open(self, order: SalesOrder, action: str) -> None:
        """
        Refuse commands on cancelled orders; confirm drafts implicitly.

        Raises:
            IllegalStateTransitionError: If the order is cancelled.
        """
        current = OrderStatus(order.status)
        if current == OrderStatus.CANCELLED:
            raise IllegalStateTransitionError("sales_order", order.id, current.value, action)
        if current == OrderStatus.DRAFT:
            order.status = OrderStatus.CONFIRMED.value
            logger.info(
                "order_confirmed",
                extra={"order_id": str(order.id), "implicit_for": action},
            )

    def cancel(self, order: SalesOrder) -> None:
        order.status = OrderStatus.CANCELLED.value
        logger.info("order_cancelled", extra={"order_id": str(order.id)})
