"""
Fulfillment lifecycle.

All legal fulfillment status transitions live in this one table.  Services
ask ``require_transition`` before mutating anything, so an illegal request
fails before any ledger entry is written.

    draft -> picking -> packed -> shipped
      |        |          |         |
      +--------+----------+---------+--> cancelled

ship is allowed straight from draft or picking.  cancelled is reached by
cancel (unshipped) or by reverting a shipment (shipped).
"""

from enum import Enum
from uuid import UUID

from inventory_kernel.exceptions import IllegalStateTransitionError


class FulfillmentStatus(str, Enum):
    DRAFT = "draft"
    PICKING = "picking"
    PACKED = "packed"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class FulfillmentAction(str, Enum):
    START_PICKING = "start_picking"
    MARK_PACKED = "mark_packed"
    SHIP = "ship"
    CANCEL = "cancel"
    REVERT_SHIPMENT = "revert_shipment"
    SOURCE_BACKORDERS = "source_backorders"


_UNSHIPPED = frozenset({FulfillmentStatus.DRAFT, FulfillmentStatus.PICKING, FulfillmentStatus.PACKED})

# action -> (allowed source states, target state or None if unchanged)
TRANSITIONS: dict[FulfillmentAction, tuple[frozenset, FulfillmentStatus | None]] = {
    FulfillmentAction.START_PICKING: (
        frozenset({FulfillmentStatus.DRAFT}),
        FulfillmentStatus.PICKING,
    ),
    FulfillmentAction.MARK_PACKED: (
        frozenset({FulfillmentStatus.PICKING}),
        FulfillmentStatus.PACKED,
    ),
    FulfillmentAction.SHIP: (_UNSHIPPED, FulfillmentStatus.SHIPPED),
    FulfillmentAction.CANCEL: (_UNSHIPPED, FulfillmentStatus.CANCELLED),
    FulfillmentAction.REVERT_SHIPMENT: (
        frozenset({FulfillmentStatus.SHIPPED}),
        FulfillmentStatus.CANCELLED,
    ),
    FulfillmentAction.SOURCE_BACKORDERS: (_UNSHIPPED, None),
}


def is_in_flight(status: FulfillmentStatus | str) -> bool:
    """Neither shipped nor cancelled."""
    return FulfillmentStatus(status) in _UNSHIPPED


def can_transition(status: FulfillmentStatus | str, action: FulfillmentAction) -> bool:
    sources, _ = TRANSITIONS[action]
    return FulfillmentStatus(status) in sources


def require_transition(
    fulfillment_id: UUID,
    status: FulfillmentStatus | str,
    action: FulfillmentAction,
) -> FulfillmentStatus:
    """
    Return the target state of ``action`` from ``status``.

    Raises:
        IllegalStateTransitionError: If the action is not legal from status.
    """
    current = FulfillmentStatus(status)
    sources, target = TRANSITIONS[action]
    if current not in sources:
        raise IllegalStateTransitionError(
            entity_type="fulfillment",
            entity_id=fulfillment_id,
            current_state=current.value,
            action=action.value,
        )
    return target if target is not None else current
