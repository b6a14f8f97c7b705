"""
Compensating operations: clamped unreserve, fulfillment and order
cancellation, shipment reversal with default-location fallback.
"""

import pytest
from sqlalchemy import select

from inventory_config.schema import EngineConfig, LocationsConfig
from inventory_kernel.domain.dtos import FulfillmentItem
from inventory_kernel.domain.order_status import OrderStatus
from inventory_kernel.exceptions import IllegalStateTransitionError
from inventory_kernel.models import Fulfillment, Location, SalesOrderLine, StockSnapshot
from inventory_services import InventoryOperations


def _snapshot(session, product_id, location_id) -> StockSnapshot:
    return session.execute(
        select(StockSnapshot).where(
            StockSnapshot.product_id == product_id,
            StockSnapshot.location_id == location_id,
        )
    ).scalar_one()


class TestRevertLineAllocation:
    def test_clamps_to_live_snapshot(self, session, ops, product, stocked_bin_x, make_order, captured_logs):
        order = make_order([(product.id, 6)])
        line_id = order.lines[0].id
        ops.allocate_line(line_id)

        # Snapshot drifted below what the ledger says the line holds
        snapshot = _snapshot(session, product.id, stocked_bin_x.id)
        snapshot.reserved = 4
        session.flush()

        result = ops.revert_line_allocation(line_id)

        assert result.unreserved_qty == 4
        assert ops.stock_level(product.id, stocked_bin_x.id).reserved == 0
        assert session.get(SalesOrderLine, line_id).allocated == 2
        clamped = [r for r in captured_logs() if r["message"] == "unreserve_clamped"]
        assert clamped and clamped[0]["ledger_reserved"] == 6
        assert clamped[0]["snapshot_reserved"] == 4

    def test_nothing_reserved(self, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 6)])
        assert ops.revert_line_allocation(order.lines[0].id).unreserved_qty == 0

    def test_leaves_fulfillment_reservation_alone(self, session, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 6)])
        line_id = order.lines[0].id
        ops.allocate_line(line_id)
        ops.create_fulfillment(order.id, [FulfillmentItem(line_id, 4)])

        result = ops.revert_line_allocation(line_id)

        assert result.unreserved_qty == 2
        assert ops.stock_level(product.id, stocked_bin_x.id).reserved == 4
        assert session.get(SalesOrderLine, line_id).allocated == 4


class TestCancelFulfillment:
    def test_returns_reservation_to_order(self, session, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 6)])
        line_id = order.lines[0].id
        ops.allocate_line(line_id)
        created = ops.create_fulfillment(order.id, [FulfillmentItem(line_id, 4)])

        result = ops.cancel_fulfillment(created.fulfillment_id)

        assert result.returned_qty == 4
        assert ops.stock_level(product.id, stocked_bin_x.id).reserved == 6
        assert session.get(SalesOrderLine, line_id).allocated == 6
        assert session.get(Fulfillment, created.fulfillment_id).status == "cancelled"
        session.refresh(order)
        assert order.status == OrderStatus.RESERVED.value

        # The returned reservation can be fulfilled again
        again = ops.create_fulfillment(order.id, [FulfillmentItem(line_id, 6)])
        assert again.moved_qty == 6

    def test_cancel_twice_refused(self, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 2)])
        created = ops.create_fulfillment(order.id, [FulfillmentItem(order.lines[0].id, 2)])
        ops.cancel_fulfillment(created.fulfillment_id)

        with pytest.raises(IllegalStateTransitionError):
            ops.cancel_fulfillment(created.fulfillment_id)

    def test_cancel_shipped_refused(self, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 2)])
        created = ops.create_fulfillment(order.id, [FulfillmentItem(order.lines[0].id, 2)])
        ops.ship_fulfillment(created.fulfillment_id)

        with pytest.raises(IllegalStateTransitionError):
            ops.cancel_fulfillment(created.fulfillment_id)


class TestRevertShipment:
    def test_unshipped_refused(self, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 2)])
        created = ops.create_fulfillment(order.id, [FulfillmentItem(order.lines[0].id, 2)])

        with pytest.raises(IllegalStateTransitionError):
            ops.revert_fulfillment_shipment(created.fulfillment_id)

    def test_returns_to_each_source_bin(self, ops, product, make_location, make_order):
        left, right = make_location(), make_location()
        ops.book_receipt(product.id, left.id, 3)
        ops.book_receipt(product.id, right.id, 4)
        order = make_order([(product.id, 7)])
        line_id = order.lines[0].id
        created = ops.create_fulfillment(order.id, [FulfillmentItem(line_id, 7)])
        ops.ship_fulfillment(created.fulfillment_id)

        result = ops.revert_fulfillment_shipment(created.fulfillment_id)

        assert (result.returned_qty, result.fallback_qty) == (7, 0)
        assert ops.stock_level(product.id, left.id).on_hand == 3
        assert ops.stock_level(product.id, right.id).on_hand == 4
        assert ops.stock_level(product.id, left.id).reserved == 3

    def _ship_with_missing_history(self, session, ops, product, stocked_bin_x, make_order):
        """Shipment whose recorded quantity exceeds its sale history by one unit."""
        order = make_order([(product.id, 6)])
        line_id = order.lines[0].id
        created = ops.create_fulfillment(order.id, [FulfillmentItem(line_id, 4)])
        ops.ship_fulfillment(created.fulfillment_id)

        fulfillment = session.get(Fulfillment, created.fulfillment_id)
        fulfillment.lines[0].quantity = 5
        session.get(SalesOrderLine, line_id).fulfilled = 5
        session.commit()
        return order, line_id, created.fulfillment_id

    def test_falls_back_to_default_location(self, session, ops, product, stocked_bin_x, make_order, make_location):
        returns = make_location(is_default=True, is_sellable=False)
        order, line_id, fulfillment_id = self._ship_with_missing_history(
            session, ops, product, stocked_bin_x, make_order
        )

        result = ops.revert_fulfillment_shipment(fulfillment_id)

        assert (result.returned_qty, result.fallback_qty) == (5, 1)
        assert ops.stock_level(product.id, stocked_bin_x.id).on_hand == 10
        fallback = ops.stock_level(product.id, returns.id)
        assert (fallback.on_hand, fallback.reserved) == (1, 1)
        line = session.get(SalesOrderLine, line_id)
        assert (line.fulfilled, line.allocated) == (0, 5)

    def test_configured_default_location_wins(
        self, session, product, stocked_bin_x, make_order, make_location, deterministic_clock
    ):
        make_location(is_default=True)
        configured = make_location(name="RETURNS-DOCK")
        ops = InventoryOperations(
            session,
            config=EngineConfig(locations=LocationsConfig(default_location="RETURNS-DOCK")),
            clock=deterministic_clock,
        )
        _, _, fulfillment_id = self._ship_with_missing_history(
            session, ops, product, stocked_bin_x, make_order
        )

        ops.revert_fulfillment_shipment(fulfillment_id)

        assert ops.stock_level(product.id, configured.id).on_hand == 1

    def test_without_default_flag_uses_lowest_id_location(
        self, session, ops, product, stocked_bin_x, make_order, make_location, captured_logs
    ):
        make_location(is_sellable=False)
        _, line_id, fulfillment_id = self._ship_with_missing_history(
            session, ops, product, stocked_bin_x, make_order
        )
        fallback = session.execute(select(Location).order_by(Location.id).limit(1)).scalar_one()

        result = ops.revert_fulfillment_shipment(fulfillment_id)

        assert result.fallback_qty == 1
        returns = [
            (e.location_id, e.change_on_hand)
            for e in ops.ledger_for_line(line_id)
            if e.kind == "return"
        ]
        assert returns == [(stocked_bin_x.id, 4), (fallback.id, 1)]
        guessed = [r for r in captured_logs() if r["message"] == "default_location_guessed"]
        assert [r["location_id"] for r in guessed] == [str(fallback.id)]

    def test_unknown_configured_name_falls_through(
        self, session, product, stocked_bin_x, make_order, make_location, deterministic_clock
    ):
        flagged = make_location(is_default=True)
        ops = InventoryOperations(
            session,
            config=EngineConfig(locations=LocationsConfig(default_location="NO-SUCH-DOCK")),
            clock=deterministic_clock,
        )
        _, _, fulfillment_id = self._ship_with_missing_history(
            session, ops, product, stocked_bin_x, make_order
        )

        ops.revert_fulfillment_shipment(fulfillment_id)

        assert ops.stock_level(product.id, flagged.id).on_hand == 1


class TestCancelOrder:
    def test_releases_everything(self, session, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 6), (product.id, 3)])
        ops.allocate_order(order.id)
        created = ops.create_fulfillment(order.id, [FulfillmentItem(order.lines[0].id, 2)])

        result = ops.cancel_order(order.id)

        assert result.cancelled_fulfillments == 1
        assert result.unreserved_qty == 9
        level = ops.stock_level(product.id, stocked_bin_x.id)
        assert (level.on_hand, level.reserved) == (10, 0)
        session.refresh(order)
        assert order.status == OrderStatus.CANCELLED.value
        assert [line.allocated for line in order.lines] == [0, 0]
        assert session.get(Fulfillment, created.fulfillment_id).status == "cancelled"
        assert ops.reconcile().is_clean

    def test_refused_with_shipped_fulfillment(self, ops, product, stocked_bin_x, make_order):
        order = make_order([(product.id, 6)])
        created = ops.create_fulfillment(order.id, [FulfillmentItem(order.lines[0].id, 2)])
        ops.ship_fulfillment(created.fulfillment_id)

        with pytest.raises(IllegalStateTransitionError):
            ops.cancel_order(order.id)

    def test_cancelled_is_terminal(self, ops, product, make_order):
        order = make_order([(product.id, 6)])
        ops.cancel_order(order.id)

        with pytest.raises(IllegalStateTransitionError):
            ops.cancel_order(order.id)
        with pytest.raises(IllegalStateTransitionError):
            ops.confirm_order(order.id)
