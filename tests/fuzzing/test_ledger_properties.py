"""
Property-based testing of the ledger under random operation sequences.

Each example gets a fresh product and three bins, then applies a random
sequence of receipts, adjustments, orders, fulfillments, shipments and
reversals.  Refused operations (insufficient stock, illegal transitions)
roll back and are ignored.  After every sequence:

- every snapshot equals the fold of its ledger entries
- no balance is negative
- every line keeps allocated + fulfilled <= ordered
- line counters agree with ledger attribution
"""

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select

from inventory_kernel.domain.dtos import FulfillmentItem
from inventory_kernel.exceptions import InventoryKernelError
from inventory_kernel.models import SalesOrderLine

BINS = 3

bins = st.integers(min_value=0, max_value=BINS - 1)
picks = st.integers(min_value=0, max_value=50)
quantities = st.integers(min_value=1, max_value=8)

actions = st.one_of(
    st.tuples(st.just("receive"), bins, quantities),
    st.tuples(st.just("adjust"), bins, st.integers(min_value=-5, max_value=5).filter(bool)),
    st.tuples(st.just("order"), quantities, st.booleans()),
    st.tuples(st.just("fulfil"), picks, quantities),
    st.tuples(st.just("ship"), picks),
    st.tuples(st.just("revert_shipment"), picks),
    st.tuples(st.just("cancel_fulfillment"), picks),
    st.tuples(st.just("revert_allocation"), picks),
    st.tuples(st.just("cancel_order"), picks),
)


def _apply(ops, make_order, product, locations, orders, fulfillments, action):
    kind = action[0]
    if kind == "receive":
        ops.book_receipt(product.id, locations[action[1]].id, action[2])
    elif kind == "adjust":
        ops.adjust_stock(product.id, locations[action[1]].id, action[2], reason="count")
    elif kind == "order":
        order = make_order([(product.id, action[1])])
        orders.append((order.id, order.lines[0].id))
        if action[2]:
            ops.allocate_order(order.id)
    elif not orders:
        return
    elif kind == "fulfil":
        order_id, line_id = orders[action[1] % len(orders)]
        result = ops.create_fulfillment(order_id, [FulfillmentItem(line_id, action[2])])
        fulfillments.append(result.fulfillment_id)
    elif kind in ("revert_allocation", "cancel_order"):
        order_id, line_id = orders[action[1] % len(orders)]
        if kind == "revert_allocation":
            ops.revert_line_allocation(line_id)
        else:
            ops.cancel_order(order_id)
    elif fulfillments:
        fulfillment_id = fulfillments[action[1] % len(fulfillments)]
        if kind == "ship":
            ops.ship_fulfillment(fulfillment_id)
        elif kind == "revert_shipment":
            ops.revert_fulfillment_shipment(fulfillment_id)
        else:
            ops.cancel_fulfillment(fulfillment_id)


class TestLedgerProperties:
    @given(sequence=st.lists(actions, min_size=1, max_size=15))
    @settings(
        max_examples=30,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_invariants_hold(self, session, ops, make_product, make_location, make_order, sequence):
        product = make_product()
        locations = [make_location() for _ in range(BINS)]
        orders: list = []
        fulfillments: list = []

        for action in sequence:
            try:
                _apply(ops, make_order, product, locations, orders, fulfillments, action)
            except InventoryKernelError:
                pass

        for level in ops.stock_levels(product.id):
            assert level.on_hand >= 0
            assert level.reserved >= 0
            assert level.on_order >= 0

        line_ids = [line_id for _, line_id in orders]
        if line_ids:
            lines = session.execute(
                select(SalesOrderLine).where(SalesOrderLine.id.in_(line_ids))
            ).scalars()
            for line in lines:
                assert line.allocated >= 0 and line.fulfilled >= 0
                assert line.allocated + line.fulfilled <= line.ordered

        report = ops.reconcile()
        assert report.is_clean, report

    @given(receipts=st.lists(st.tuples(bins, quantities), min_size=1, max_size=10))
    @settings(
        max_examples=20,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_allocation_takes_largest_bins_first(
        self, ops, make_product, make_location, make_order, receipts
    ):
        product = make_product()
        locations = [make_location() for _ in range(BINS)]
        for index, quantity in receipts:
            ops.book_receipt(product.id, locations[index].id, quantity)
        before = {level.location_id: level.available for level in ops.stock_levels(product.id)}

        order = make_order([(product.id, 5)])
        ops.allocate_line(order.lines[0].id)

        after = {level.location_id: level.available for level in ops.stock_levels(product.id)}
        drawn = {loc: before[loc] - after[loc] for loc in before if before[loc] != after[loc]}
        untouched = [before[loc] for loc in before if loc not in drawn]
        assert sum(drawn.values()) == min(5, sum(before.values()))
        # An untouched bin never holds more than a bin that was drawn from
        for loc in drawn:
            assert all(before[loc] >= other for other in untouched)
