"""
Module: inventory_kernel.selectors.stock_selector
Responsibility: Snapshot read model (on_hand, reserved, available, on_order)
    for reporting and search views.  Plain reads, no locks.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import StockLevel
from inventory_kernel.models.snapshot import StockSnapshot
from inventory_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector):
    """Stock level queries."""

    def stock_level(self, product_id: UUID, location_id: UUID) -> StockLevel:
        """Balance at one location; all zeros if nothing was ever booked there."""
        row = self.session.execute(
            select(StockSnapshot).where(
                StockSnapshot.product_id == product_id,
                StockSnapshot.location_id == location_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return StockLevel.empty(product_id, location_id)
        return StockLevel.from_model(row)

    def stock_levels(self, product_id: UUID) -> list[StockLevel]:
        """Balances at every location holding a snapshot for the product."""
        rows = self.session.execute(
            select(StockSnapshot)
            .where(StockSnapshot.product_id == product_id)
            .order_by(StockSnapshot.location_id)
        ).scalars().all()
        return [StockLevel.from_model(row) for row in rows]

    def totals(self, product_id: UUID) -> dict[str, int]:
        """Product totals across all locations."""
        levels = self.stock_levels(product_id)
        return {
            "on_hand": sum(level.on_hand for level in levels),
            "reserved": sum(level.reserved for level in levels),
            "available": sum(level.available for level in levels),
            "on_order": sum(level.on_order for level in levels),
        }
