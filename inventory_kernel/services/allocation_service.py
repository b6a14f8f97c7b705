"""
AllocationService -- reserves free stock against order-line demand.

Responsibility:
    For a line, computes needed = ordered - fulfilled - allocated and reserves
    up to that much from sellable locations, largest available bin first,
    writing one ``reserve`` ledger entry per bin under the order's reference.

Architecture position:
    Kernel > Services -- imperative shell around domain.allocation.
    Called by InventoryOperations (allocate_line / allocate_order) and by
    FulfillmentService (free-stock top-up for a new fulfillment).

Invariants enforced:
    - Never reserves more than a bin's available quantity: candidate
      snapshots are locked (ascending location id) before they are read.
    - line.allocated moves in lockstep with the reserve entries written.
    - allocated + fulfilled <= ordered: only ``needed`` is ever requested.

Failure modes:
    - OrderLineNotFoundError / OrderNotFoundError.
    - IllegalStateTransitionError on a cancelled order.
    - A shortfall is NOT an error: fully_allocated=False.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.allocation import BinCandidate, BinDraw, plan_allocation
from inventory_kernel.domain.dtos import (
    AllocationResult,
    LedgerEntryDraft,
    OrderAllocationResult,
)
from inventory_kernel.domain.references import order_reference
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.ledger import LedgerEntryKind
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLine
from inventory_kernel.services.entity_loader import EntityLoader
from inventory_kernel.services.ledger_store import LedgerStore
from inventory_kernel.services.order_status_service import OrderStatusService

logger = get_logger("services.allocation")


class AllocationService:
    """
    Allocation engine.

    Contract:
        allocate_line(line_id) -> AllocationResult(allocated_now, fully_allocated)
        allocate_order(order_id) -> OrderAllocationResult(fully_allocated, total_allocated)

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT handle idempotency tokens; the orchestrator does.
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

    def allocate_line(self, line_id: UUID) -> AllocationResult:
        order, line = self._loader.lock_order_for_line(line_id)
        self._status.require_open(order, "allocate")
        result = self._allocate(order, line)
        self._status.refresh(order)
        return result

    def allocate_order(self, order_id: UUID) -> OrderAllocationResult:
        order = self._loader.lock_order(order_id)
        self._status.require_open(order, "allocate")
        lines = self._loader.lock_lines(order.id)
        self._ledger.projector.lock_products(line.product_id for line in lines.values())

        total = 0
        fully = True
        for line in sorted(lines.values(), key=lambda l: (l.line_number, str(l.id))):
            result = self._allocate(order, line)
            total += result.allocated_now
            fully = fully and result.fully_allocated

        self._status.refresh(order)
        logger.info(
            "order_allocation_completed",
            extra={
                "order_id": str(order.id),
                "line_count": len(lines),
                "total_allocated": total,
                "fully_allocated": fully,
            },
        )
        return OrderAllocationResult(
            order_id=order.id,
            fully_allocated=fully,
            total_allocated=total,
        )

    def reserve_free_stock(
        self,
        product_id: UUID,
        quantity: int,
        reference_id: str,
        line_id: UUID | None,
        notes: str | None = None,
    ) -> list[BinDraw]:
        """
        Reserve up to ``quantity`` unreserved units of a product.

        Locks the sellable snapshots with free stock, ranks them largest
        first, and writes one reserve entry per chosen bin.

        Returns:
            The draws actually made (possibly fewer units than requested).
        """
        if quantity <= 0:
            return []
        snapshots = self._ledger.projector.lock_sellable(product_id)
        candidates = [BinCandidate(s.location_id, s.available) for s in snapshots]
        draws = plan_allocation(candidates, quantity)

        for draw in draws:
            self._ledger.append(
                LedgerEntryDraft(
                    product_id=product_id,
                    location_id=draw.location_id,
                    kind=LedgerEntryKind.RESERVE,
                    change_reserved=draw.quantity,
                    reference_id=reference_id,
                    sales_order_line_id=line_id,
                    notes=notes,
                )
            )
        return draws

    def _allocate(self, order: SalesOrder, line: SalesOrderLine) -> AllocationResult:
        needed = line.needed
        if needed <= 0:
            logger.debug(
                "allocation_not_needed",
                extra={"line_id": str(line.id), "needed": needed},
            )
            return AllocationResult(line_id=line.id, allocated_now=0, fully_allocated=True)

        draws = self.reserve_free_stock(
            line.product_id,
            needed,
            order_reference(order.id),
            line.id,
        )
        allocated_now = sum(d.quantity for d in draws)
        line.allocated += allocated_now
        fully = allocated_now >= needed

        logger.info(
            "allocation_completed" if fully else "allocation_short",
            extra={
                "order_id": str(order.id),
                "line_id": str(line.id),
                "product_id": str(line.product_id),
                "needed": needed,
                "allocated_now": allocated_now,
                "shortfall": needed - allocated_now,
                "bins": [str(d.location_id) for d in draws],
            },
        )
        return AllocationResult(
            line_id=line.id,
            allocated_now=allocated_now,
            fully_allocated=fully,
        )
