"""
Module: inventory_kernel.models.sales_order
Responsibility: ORM persistence for sales orders and their lines.  The line
    counters (allocated, fulfilled) are a cache of what the ledger implies,
    updated in the same transaction that appends the causing ledger entries.
Architecture position: Kernel > Models.  May import from db/base.py and the
    status enum in domain/order_status.py.

Invariants enforced:
    - ordered, allocated, fulfilled >= 0 (CHECK constraints).
    - allocated + fulfilled <= ordered (CHECK constraint).
    - SalesOrder.status is derived by the order status resolver; services
      never set it from anything but resolve_order_status() or an explicit
      confirm/cancel command.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TimestampedBase, UUIDString
from inventory_kernel.domain.order_status import OrderStatus


class SalesOrder(TimestampedBase):
    """
    Order header.

    Contract:
        status is never set independently of line/fulfillment state, except
        by the explicit confirm (draft -> confirmed) and cancel commands.
    """

    __tablename__ = "sales_orders"

    __table_args__ = (
        Index("idx_sales_order_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.DRAFT.value,
        nullable=False,
    )

    lines: Mapped[list["SalesOrderLine"]] = relationship(
        back_populates="order",
        order_by="SalesOrderLine.line_number",
        lazy="selectin",
    )

    @property
    def reference_id(self) -> str:
        """Ledger reference for the order-level reservation bucket."""
        from inventory_kernel.domain.references import order_reference

        return order_reference(self.id)

    def __repr__(self) -> str:
        return f"<SalesOrder {self.order_number} status={self.status}>"


class SalesOrderLine(TimestampedBase):
    """
    One product line of a sales order.

    Guarantees:
        - allocated == units currently reserved for this line, in the order
          bucket and in any unshipped fulfillment bucket.
        - fulfilled == units shipped and not reverted.
    """

    __tablename__ = "sales_order_lines"

    __table_args__ = (
        CheckConstraint("ordered >= 0", name="ck_line_ordered_non_negative"),
        CheckConstraint("allocated >= 0", name="ck_line_allocated_non_negative"),
        CheckConstraint("fulfilled >= 0", name="ck_line_fulfilled_non_negative"),
        CheckConstraint(
            "allocated + fulfilled <= ordered",
            name="ck_line_committed_within_ordered",
        ),
        Index("idx_sales_order_line_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales_orders.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    ordered: Mapped[int] = mapped_column(BigInteger, nullable=False)

    allocated: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    fulfilled: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    order: Mapped["SalesOrder"] = relationship(back_populates="lines")

    @property
    def needed(self) -> int:
        """Demand not yet reserved or shipped."""
        return self.ordered - self.fulfilled - self.allocated

    def __repr__(self) -> str:
        return (
            f"<SalesOrderLine {self.id} ordered={self.ordered} "
            f"allocated={self.allocated} fulfilled={self.fulfilled}>"
        )
