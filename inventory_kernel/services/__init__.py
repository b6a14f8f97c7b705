"""Kernel services: the imperative shell around the domain core."""

from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.entity_loader import EntityLoader
from inventory_kernel.services.fulfillment_service import FulfillmentService
from inventory_kernel.services.idempotency_service import IdempotencyService
from inventory_kernel.services.ledger_store import LedgerStore
from inventory_kernel.services.order_status_service import OrderStatusService
from inventory_kernel.services.receiving_service import ReceivingService
from inventory_kernel.services.reconciliation_service import ReconciliationService
from inventory_kernel.services.reversal_service import ReversalService
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.services.snapshot_projector import SnapshotProjector

__all__ = [
    "AllocationService",
    "EntityLoader",
    "FulfillmentService",
    "IdempotencyService",
    "LedgerStore",
    "OrderStatusService",
    "ReceivingService",
    "ReconciliationService",
    "ReversalService",
    "SequenceService",
    "SnapshotProjector",
]
