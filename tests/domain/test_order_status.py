"""
Order status resolver: pure rules over line and fulfillment aggregates.
"""

import pytest

from inventory_kernel.domain.order_status import (
    LineQuantities,
    OrderAggregates,
    OrderStatus,
    resolve_order_status,
)


def _agg(*lines: tuple[int, int, int], in_flight: int = 0) -> OrderAggregates:
    return OrderAggregates(
        lines=tuple(LineQuantities(*line) for line in lines),
        in_flight_quantity=in_flight,
    )


class TestResolveOrderStatus:
    def test_nothing_allocated_is_confirmed(self):
        assert resolve_order_status("confirmed", _agg((10, 0, 0))) == OrderStatus.CONFIRMED

    def test_fully_covered_is_reserved(self):
        assert resolve_order_status("confirmed", _agg((6, 6, 0))) == OrderStatus.RESERVED

    def test_partially_covered_is_awaiting_stock(self):
        assert resolve_order_status("confirmed", _agg((15, 10, 0))) == OrderStatus.AWAITING_STOCK

    def test_one_line_short_is_awaiting_stock(self):
        status = resolve_order_status("reserved", _agg((5, 5, 0), (3, 0, 0)))
        assert status == OrderStatus.AWAITING_STOCK

    def test_everything_shipped_is_completed(self):
        assert resolve_order_status("picking", _agg((4, 0, 4), (2, 0, 2))) == OrderStatus.COMPLETED

    def test_partial_shipment(self):
        assert resolve_order_status("picking", _agg((6, 2, 4))) == OrderStatus.PARTIALLY_SHIPPED

    def test_in_flight_fulfillment_is_picking(self):
        assert resolve_order_status("reserved", _agg((6, 6, 0), in_flight=4)) == OrderStatus.PICKING

    def test_in_flight_covering_remainder_after_partial_shipment_is_picking(self):
        status = resolve_order_status("partially_shipped", _agg((6, 2, 4), in_flight=2))
        assert status == OrderStatus.PICKING

    def test_falls_back_when_fulfillments_removed(self):
        # was picking; the only fulfillment got cancelled and nothing is reserved
        assert resolve_order_status("picking", _agg((6, 0, 0))) == OrderStatus.CONFIRMED

    def test_falls_back_to_reserved_when_stock_still_held(self):
        assert resolve_order_status("picking", _agg((6, 6, 0))) == OrderStatus.RESERVED

    @pytest.mark.parametrize("sticky", ["draft", "cancelled"])
    def test_sticky_states_never_change(self, sticky):
        assert resolve_order_status(sticky, _agg((6, 6, 0))) == OrderStatus(sticky)

    def test_empty_order_keeps_status(self):
        assert resolve_order_status("confirmed", _agg()) == OrderStatus.CONFIRMED

    @pytest.mark.parametrize(
        "aggregates",
        [
            _agg((10, 0, 0)),
            _agg((10, 4, 0)),
            _agg((10, 10, 0)),
            _agg((10, 6, 4)),
            _agg((10, 6, 0), in_flight=6),
            _agg((10, 0, 10)),
        ],
    )
    def test_idempotent(self, aggregates):
        once = resolve_order_status("confirmed", aggregates)
        assert resolve_order_status(once, aggregates) == once
