"""
Module: inventory_kernel.models.fulfillment
Responsibility: ORM persistence for fulfillments (shipment units) and the
    per-location lines that record which bins each fulfillment draws from.
Architecture position: Kernel > Models.  May import from db/base.py and the
    status enum in domain/fulfillment_lifecycle.py.

Invariants enforced:
    - FulfillmentLine.quantity > 0 (CHECK constraint).
    - A FulfillmentLine with location_id NULL is a backorder marker: demand
      the fulfillment could not source.  It never carries a reservation.
    - Status moves only along the transitions in domain/fulfillment_lifecycle.py.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TimestampedBase, UUIDString
from inventory_kernel.domain.fulfillment_lifecycle import FulfillmentStatus


class Fulfillment(TimestampedBase):
    """A shipment unit for one sales order."""

    __tablename__ = "fulfillments"

    __table_args__ = (
        Index("idx_fulfillment_order", "order_id"),
        Index("idx_fulfillment_status", "status"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales_orders.id"),
        nullable=False,
    )

    fulfillment_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=FulfillmentStatus.DRAFT.value,
        nullable=False,
    )

    shipped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    lines: Mapped[list["FulfillmentLine"]] = relationship(
        back_populates="fulfillment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def reference_id(self) -> str:
        """Ledger reference for the fulfillment-level reservation bucket."""
        from inventory_kernel.domain.references import fulfillment_reference

        return fulfillment_reference(self.id)

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def has_backorders(self) -> bool:
        return any(line.location_id is None for line in self.lines)

    def __repr__(self) -> str:
        return f"<Fulfillment {self.fulfillment_number} status={self.status}>"


class FulfillmentLine(TimestampedBase):
    """
    Quantity of one order line drawn from one location.

    location_id is NULL for the unsourced (backordered) remainder.
    """

    __tablename__ = "fulfillment_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_fulfillment_line_quantity_positive"),
        Index("idx_fulfillment_line_fulfillment", "fulfillment_id"),
        Index("idx_fulfillment_line_order_line", "sales_order_line_id"),
    )

    fulfillment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fulfillments.id"),
        nullable=False,
    )

    sales_order_line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales_order_lines.id"),
        nullable=False,
    )

    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    fulfillment: Mapped["Fulfillment"] = relationship(back_populates="lines")

    @property
    def is_backorder(self) -> bool:
        return self.location_id is None

    def __repr__(self) -> str:
        where = self.location_id or "BACKORDER"
        return f"<FulfillmentLine {self.sales_order_line_id} x{self.quantity} @ {where}>"
