"""
Module: inventory_kernel.models.product
Responsibility: ORM persistence for products and storage locations.  Both are
    master data owned by an external collaborator; the kernel only references
    them by id and reads the flags it needs (is_active, is_sellable, is_default).
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TimestampedBase


class Product(TimestampedBase):
    """A stock-keeping unit referenced by ledger entries and order lines."""

    __tablename__ = "products"

    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product {self.sku}>"


class Location(TimestampedBase):
    """
    A storage bin.

    Contract:
        Only locations with is_sellable=True participate in allocation.
        At most one location should carry is_default=True; it receives
        returned stock when shipment history cannot identify the source bin.
    """

    __tablename__ = "locations"

    __table_args__ = (
        Index("idx_location_sellable", "is_sellable"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    is_sellable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Location {self.name} sellable={self.is_sellable}>"
