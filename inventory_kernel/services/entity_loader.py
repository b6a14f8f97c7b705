"""
EntityLoader -- locked loads of the rows an operation mutates.

Responsibility:
    Fetch orders, order lines, fulfillments and master data by id, raising
    the typed NotFound errors, and take row locks in one consistent order:

        sales order -> fulfillment -> order lines (ascending id)
                    -> snapshots (ascending location id, via the projector)

    Locking the order first serializes every operation touching the same
    order; snapshot locks then serialize operations on the same bin.

Architecture position:
    Kernel > Services -- shared by the allocation, fulfillment, reversal
    and receiving services.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.exceptions import (
    DefaultLocationNotConfiguredError,
    FulfillmentNotFoundError,
    LocationNotFoundError,
    OrderLineNotFoundError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.fulfillment import Fulfillment
from inventory_kernel.models.product import Location, Product
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLine

logger = get_logger("services.entity_loader")


class EntityLoader:
    """Typed lookups and row locks."""

    def __init__(self, session: Session, default_location_name: str | None = None):
        self._session = session
        self._default_location_name = default_location_name

    def _locked(self, model, entity_id: UUID):
        return self._session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def lock_order(self, order_id: UUID) -> SalesOrder:
        order = self._locked(SalesOrder, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def get_line(self, line_id: UUID) -> SalesOrderLine:
        line = self._session.get(SalesOrderLine, line_id)
        if line is None:
            raise OrderLineNotFoundError(line_id)
        return line

    def lock_line(self, line_id: UUID) -> SalesOrderLine:
        line = self._locked(SalesOrderLine, line_id)
        if line is None:
            raise OrderLineNotFoundError(line_id)
        return line

    def lock_lines(self, order_id: UUID) -> dict[UUID, SalesOrderLine]:
        """All lines of an order, locked in ascending id order."""
        rows = self._session.execute(
            select(SalesOrderLine)
            .where(SalesOrderLine.order_id == order_id)
            .order_by(SalesOrderLine.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {row.id: row for row in rows}

    def lock_order_for_line(self, line_id: UUID) -> tuple[SalesOrder, SalesOrderLine]:
        """Lock a line's order, then the line itself."""
        order_id = self.get_line(line_id).order_id
        order = self.lock_order(order_id)
        return order, self.lock_line(line_id)

    # -------------------------------------------------------------------------
    # Fulfillments
    # -------------------------------------------------------------------------

    def get_fulfillment(self, fulfillment_id: UUID) -> Fulfillment:
        fulfillment = self._session.get(Fulfillment, fulfillment_id)
        if fulfillment is None:
            raise FulfillmentNotFoundError(fulfillment_id)
        return fulfillment

    def lock_fulfillment(self, fulfillment_id: UUID) -> tuple[SalesOrder, Fulfillment]:
        """Lock a fulfillment's order, then the fulfillment."""
        order_id = self.get_fulfillment(fulfillment_id).order_id
        order = self.lock_order(order_id)
        fulfillment = self._locked(Fulfillment, fulfillment_id)
        if fulfillment is None:
            raise FulfillmentNotFoundError(fulfillment_id)
        return order, fulfillment

    def fulfillments_for_order(self, order_id: UUID) -> list[Fulfillment]:
        return list(
            self._session.execute(
                select(Fulfillment)
                .where(Fulfillment.order_id == order_id)
                .order_by(Fulfillment.fulfillment_number)
            ).scalars().all()
        )

    # -------------------------------------------------------------------------
    # Master data
    # -------------------------------------------------------------------------

    def require_product(self, product_id: UUID) -> Product:
        product = self._session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def require_location(self, location_id: UUID) -> Location:
        location = self._session.get(Location, location_id)
        if location is None:
            raise LocationNotFoundError(location_id)
        return location

    def default_location(self) -> Location:
        """
        Fallback bin for returns without usable history.

        In order: the configured location name, the location flagged
        is_default, then the location with the lowest id.  Only an empty
        locations table is an error.
        """
        if self._default_location_name:
            location = self._session.execute(
                select(Location).where(Location.name == self._default_location_name)
            ).scalar_one_or_none()
            if location is not None:
                return location
            logger.warning(
                "default_location_name_unknown",
                extra={"location_name": self._default_location_name},
            )

        location = self._session.execute(
            select(Location)
            .where(Location.is_default.is_(True))
            .order_by(Location.name)
            .limit(1)
        ).scalar_one_or_none()
        if location is not None:
            return location

        location = self._session.execute(
            select(Location).order_by(Location.id).limit(1)
        ).scalar_one_or_none()
        if location is None:
            logger.error("default_location_missing")
            raise DefaultLocationNotConfiguredError()
        logger.warning(
            "default_location_guessed",
            extra={"location_id": str(location.id), "location_name": location.name},
        )
        return location
