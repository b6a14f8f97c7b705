"""
Fulfillment lifecycle transition table.
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.fulfillment_lifecycle import (
    FulfillmentAction,
    FulfillmentStatus,
    can_transition,
    is_in_flight,
    require_transition,
)
from inventory_kernel.exceptions import IllegalStateTransitionError


class TestTransitions:
    @pytest.mark.parametrize(
        "status,action,target",
        [
            ("draft", FulfillmentAction.START_PICKING, FulfillmentStatus.PICKING),
            ("picking", FulfillmentAction.MARK_PACKED, FulfillmentStatus.PACKED),
            ("packed", FulfillmentAction.SHIP, FulfillmentStatus.SHIPPED),
            ("draft", FulfillmentAction.SHIP, FulfillmentStatus.SHIPPED),
            ("picking", FulfillmentAction.CANCEL, FulfillmentStatus.CANCELLED),
            ("shipped", FulfillmentAction.REVERT_SHIPMENT, FulfillmentStatus.CANCELLED),
            ("packed", FulfillmentAction.SOURCE_BACKORDERS, FulfillmentStatus.PACKED),
        ],
    )
    def test_legal(self, status, action, target):
        assert require_transition(uuid4(), status, action) == target

    @pytest.mark.parametrize(
        "status,action",
        [
            ("shipped", FulfillmentAction.SHIP),
            ("cancelled", FulfillmentAction.SHIP),
            ("shipped", FulfillmentAction.CANCEL),
            ("draft", FulfillmentAction.REVERT_SHIPMENT),
            ("packed", FulfillmentAction.REVERT_SHIPMENT),
            ("packed", FulfillmentAction.START_PICKING),
            ("draft", FulfillmentAction.MARK_PACKED),
            ("cancelled", FulfillmentAction.SOURCE_BACKORDERS),
        ],
    )
    def test_illegal(self, status, action):
        fulfillment_id = uuid4()
        assert not can_transition(status, action)
        with pytest.raises(IllegalStateTransitionError) as exc_info:
            require_transition(fulfillment_id, status, action)
        assert exc_info.value.entity_id == fulfillment_id
        assert exc_info.value.current_state == status
        assert exc_info.value.action == action.value

    def test_in_flight(self):
        assert is_in_flight("draft")
        assert is_in_flight(FulfillmentStatus.PACKED)
        assert not is_in_flight("shipped")
        assert not is_in_flight("cancelled")
