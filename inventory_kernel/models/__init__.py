"""ORM models for the inventory kernel."""

from inventory_kernel.models.fulfillment import Fulfillment, FulfillmentLine
from inventory_kernel.models.ledger import LedgerEntry, LedgerEntryKind
from inventory_kernel.models.operation_record import OperationRecord
from inventory_kernel.models.product import Location, Product
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLine
from inventory_kernel.models.sequence import SequenceCounter
from inventory_kernel.models.snapshot import StockSnapshot

__all__ = [
    "Product",
    "Location",
    "LedgerEntry",
    "LedgerEntryKind",
    "StockSnapshot",
    "SalesOrder",
    "SalesOrderLine",
    "Fulfillment",
    "FulfillmentLine",
    "OperationRecord",
    "SequenceCounter",
]
