"""
Order Status Resolver.

Responsibility:
    Derive a sales order's lifecycle state from its line counters and the
    state of its fulfillments.  One pure function, re-run after every
    operation that touches the order.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Called by OrderStatusService, which loads the aggregates and writes the
    single status field.

Invariants enforced:
    - Idempotent: resolving twice over the same aggregates yields the same
      state, whatever the current status was (except the sticky states).
    - Side-effect free: never writes ledger entries.

States:

    draft -> confirmed -> {reserved | awaiting_stock}
          -> {picking | partially_shipped} -> completed
    cancelled: reachable from any non-terminal state, terminal.

Rules, first match wins:

    1. draft and cancelled are sticky (only explicit commands leave draft;
       cancelled is terminal).
    2. An order with no ordered quantity keeps its status.
    3. sum(fulfilled) >= sum(ordered)                     -> completed
    4. in-flight fulfillments cover all remaining demand  -> picking
    5. something has shipped                              -> partially_shipped
    6. some in-flight fulfillment exists                  -> picking
    7. allocation covers all remaining demand             -> reserved
    8. allocation covers part of it                       -> awaiting_stock
    9. otherwise                                          -> confirmed
"""

from dataclasses import dataclass
from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle state of a sales order."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    RESERVED = "reserved"
    AWAITING_STOCK = "awaiting_stock"
    PICKING = "picking"
    PARTIALLY_SHIPPED = "partially_shipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


STICKY_STATUSES = frozenset({OrderStatus.DRAFT, OrderStatus.CANCELLED})


@dataclass(frozen=True)
class LineQuantities:
    ordered: int
    allocated: int
    fulfilled: int


@dataclass(frozen=True)
class OrderAggregates:
    """
    Everything the resolver looks at.

    in_flight_quantity is the total quantity on fulfillments that are neither
    shipped nor cancelled (backorder lines included).
    """

    lines: tuple[LineQuantities, ...]
    in_flight_quantity: int = 0

    @property
    def ordered(self) -> int:
        return sum(line.ordered for line in self.lines)

    @property
    def allocated(self) -> int:
        return sum(line.allocated for line in self.lines)

    @property
    def fulfilled(self) -> int:
        return sum(line.fulfilled for line in self.lines)


def resolve_order_status(current: OrderStatus | str, aggregates: OrderAggregates) -> OrderStatus:
    """Return the status the order should have, given its aggregates."""
    current = OrderStatus(current)
    if current in STICKY_STATUSES:
        return current

    ordered = aggregates.ordered
    if ordered <= 0:
        return current

    fulfilled = aggregates.fulfilled
    if fulfilled >= ordered:
        return OrderStatus.COMPLETED

    in_flight = aggregates.in_flight_quantity
    if in_flight > 0 and fulfilled + in_flight >= ordered:
        return OrderStatus.PICKING
    if fulfilled > 0:
        return OrderStatus.PARTIALLY_SHIPPED
    if in_flight > 0:
        return OrderStatus.PICKING

    remaining = ordered - fulfilled
    allocated = aggregates.allocated
    if allocated >= remaining:
        return OrderStatus.RESERVED
    if allocated > 0:
        return OrderStatus.AWAITING_STOCK
    return OrderStatus.CONFIRMED
