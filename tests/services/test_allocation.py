"""
Allocation engine: bin choice, shortfalls, order-level allocation.
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.order_status import OrderStatus
from inventory_kernel.domain.references import order_reference
from inventory_kernel.exceptions import (
    IllegalStateTransitionError,
    OrderLineNotFoundError,
    OrderNotFoundError,
)
from inventory_kernel.models import SalesOrderLine


@pytest.fixture
def three_bins(ops, product, make_location):
    """Sellable bins holding 3, 8 and 5 units."""
    bins = [make_location(), make_location(), make_location()]
    for location, qty in zip(bins, (3, 8, 5)):
        ops.book_receipt(product.id, location.id, qty)
    return bins


class TestAllocateLine:
    def test_largest_bin_first(self, ops, product, three_bins, make_order):
        small, large, medium = three_bins
        order = make_order([(product.id, 10)])

        result = ops.allocate_line(order.lines[0].id)

        assert result.allocated_now == 10
        assert result.fully_allocated is True
        assert ops.stock_level(product.id, large.id).reserved == 8
        assert ops.stock_level(product.id, medium.id).reserved == 2
        assert ops.stock_level(product.id, small.id).reserved == 0

        entries = ops.ledger_for_reference(order_reference(order.id))
        assert [(e.kind, e.location_id, e.change_reserved) for e in entries] == [
            ("reserve", large.id, 8),
            ("reserve", medium.id, 2),
        ]
        assert all(e.sales_order_line_id == order.lines[0].id for e in entries)

    def test_equal_bins_drawn_in_location_id_order(self, ops, product, make_location, make_order):
        bins = [make_location(), make_location()]
        for location in bins:
            ops.book_receipt(product.id, location.id, 4)
        order = make_order([(product.id, 5)])

        ops.allocate_line(order.lines[0].id)

        first, second = sorted(bins, key=lambda b: str(b.id))
        assert ops.stock_level(product.id, first.id).reserved == 4
        assert ops.stock_level(product.id, second.id).reserved == 1

    def test_unsellable_bins_ignored(self, ops, product, make_location, make_order):
        quarantine = make_location(is_sellable=False)
        ops.book_receipt(product.id, quarantine.id, 50)
        order = make_order([(product.id, 5)])

        result = ops.allocate_line(order.lines[0].id)

        assert result.allocated_now == 0
        assert result.fully_allocated is False
        assert ops.stock_level(product.id, quarantine.id).reserved == 0

    def test_stock_reserved_elsewhere_is_not_available(self, ops, product, stocked_bin_x, make_order):
        first = make_order([(product.id, 7)])
        second = make_order([(product.id, 7)])

        ops.allocate_line(first.lines[0].id)
        result = ops.allocate_line(second.lines[0].id)

        assert result.allocated_now == 3
        level = ops.stock_level(product.id, stocked_bin_x.id)
        assert (level.reserved, level.available) == (10, 0)

    def test_fully_allocated_line_is_a_no_op(self, session, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 6)])
        line_id = order.lines[0].id
        ops.allocate_line(line_id)

        again = ops.allocate_line(line_id)

        assert again.allocated_now == 0
        assert again.fully_allocated is True
        assert session.get(SalesOrderLine, line_id).allocated == 6
        assert len(ops.ledger_for_reference(order_reference(order.id))) == 1

    def test_tops_up_after_new_stock(self, session, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 15)])
        line_id = order.lines[0].id
        ops.allocate_line(line_id)

        ops.book_receipt(product.id, stocked_bin_x.id, 10)
        result = ops.allocate_line(line_id)

        assert result.allocated_now == 5
        assert result.fully_allocated is True
        assert session.get(SalesOrderLine, line_id).allocated == 15

    def test_unknown_line(self, ops):
        with pytest.raises(OrderLineNotFoundError):
            ops.allocate_line(uuid4())

    def test_cancelled_order_refused(self, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 2)])
        ops.cancel_order(order.id)

        with pytest.raises(IllegalStateTransitionError):
            ops.allocate_line(order.lines[0].id)
        assert ops.stock_level(product.id, stocked_bin_x.id).reserved == 0


class TestAllocateOrder:
    def test_all_lines(self, session, ops, make_product, make_location, make_order):
        bolts, nuts = make_product("Bolt"), make_product("Nut")
        location = make_location()
        ops.book_receipt(bolts.id, location.id, 20)
        ops.book_receipt(nuts.id, location.id, 3)
        order = make_order([(bolts.id, 12), (nuts.id, 5)])

        result = ops.allocate_order(order.id)

        assert result.total_allocated == 15
        assert result.fully_allocated is False
        session.refresh(order)
        assert order.status == OrderStatus.AWAITING_STOCK.value
        assert [line.allocated for line in order.lines] == [12, 3]

    def test_fully_covered_order_is_reserved(self, session, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 4), (product.id, 6)])

        result = ops.allocate_order(order.id)

        assert result.fully_allocated is True
        assert result.total_allocated == 10
        session.refresh(order)
        assert order.status == OrderStatus.RESERVED.value

    def test_unknown_order(self, ops):
        with pytest.raises(OrderNotFoundError):
            ops.allocate_order(uuid4())

    def test_same_balances_same_plan(self, ops, make_product, make_location, make_order):
        """Two products with identical bin balances get identical plans."""
        plans = []
        bins = [make_location(), make_location(), make_location()]
        for name in ("Left", "Right"):
            item = make_product(name)
            for location, qty in zip(bins, (2, 7, 7)):
                ops.book_receipt(item.id, location.id, qty)
            order = make_order([(item.id, 9)])
            ops.allocate_order(order.id)
            plans.append([
                (e.location_id, e.change_reserved)
                for e in ops.ledger_for_reference(order_reference(order.id))
            ])
        assert plans[0] == plans[1]
        assert [qty for _, qty in plans[0]] == [7, 2]
