"""Read-only selectors."""

from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.selectors.stock_selector import StockSelector

__all__ = ["LedgerSelector", "StockSelector"]
