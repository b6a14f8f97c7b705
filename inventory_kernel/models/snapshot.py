"""
Module: inventory_kernel.models.snapshot
Responsibility: ORM persistence for the per-(product, location) stock balance,
    the materialized fold of the inventory ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one row per (product, location) (UNIQUE constraint).
    - on_hand >= 0, reserved >= 0, on_order >= 0 (CHECK constraints, and
      re-checked by the projector before every write).
    - Written only by SnapshotProjector.
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
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class StockSnapshot(Base):
    """
    Current balance of one product at one location.

    Guarantees:
        - on_hand == sum(change_on_hand), reserved == sum(change_reserved)
          and on_order == sum(change_on_order) over the ledger rows for
          this key.
        - last_entry_seq is the seq of the last ledger row folded in.
    """

    __tablename__ = "inventory_snapshots"

    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="uq_snapshot_product_location"),
        CheckConstraint("on_hand >= 0", name="ck_snapshot_on_hand_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_snapshot_reserved_non_negative"),
        CheckConstraint("on_order >= 0", name="ck_snapshot_on_order_non_negative"),
        Index("idx_snapshot_location", "location_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=False,
    )

    on_hand: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    reserved: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    on_order: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    last_entry_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def available(self) -> int:
        """Sellable quantity: on_hand - reserved."""
        return self.on_hand - self.reserved

    def __repr__(self) -> str:
        return (
            f"<StockSnapshot {self.product_id}@{self.location_id} "
            f"on_hand={self.on_hand} reserved={self.reserved}>"
        )
