"""Pure domain core: bin selection, status resolution, lifecycle rules, DTOs."""

from inventory_kernel.domain.allocation import BinCandidate, BinDraw, plan_allocation
from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.fulfillment_lifecycle import (
    FulfillmentAction,
    FulfillmentStatus,
    require_transition,
)
from inventory_kernel.domain.order_status import (
    LineQuantities,
    OrderAggregates,
    OrderStatus,
    resolve_order_status,
)
from inventory_kernel.domain.references import fulfillment_reference, order_reference

__all__ = [
    "BinCandidate",
    "BinDraw",
    "plan_allocation",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "FulfillmentAction",
    "FulfillmentStatus",
    "require_transition",
    "LineQuantities",
    "OrderAggregates",
    "OrderStatus",
    "resolve_order_status",
    "order_reference",
    "fulfillment_reference",
]
