"""
DTOs -- immutable data structures crossing the service boundary.

Responsibility:
    Input drafts (LedgerEntryDraft, FulfillmentItem), operation results
    (AllocationResult, FulfillmentResult, ...) and read-model records
    (StockLevel, LedgerEntryRecord, ReconciliationReport).

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() class methods are boundary
    converters invoked only from selectors and services.

Invariants enforced:
    - A LedgerEntryDraft always carries at least one non-zero delta.
    - Results are frozen; an idempotent replay rebuilds an equal value from
      the stored payload (to_payload / from_payload).
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from inventory_kernel.exceptions import InvalidQuantityError

if TYPE_CHECKING:
    from inventory_kernel.models.ledger import LedgerEntry as LedgerEntryModel
    from inventory_kernel.models.snapshot import StockSnapshot as StockSnapshotModel


class _Payload:
    """JSON round-trip for flat result dataclasses (UUIDs as strings)."""

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            payload[f.name] = str(value) if isinstance(value, UUID) else value
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]):
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            value = payload.get(f.name)
            if value is not None and "UUID" in str(f.type):
                value = UUID(value)
            kwargs[f.name] = value
        return cls(**kwargs)


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class LedgerEntryDraft:
    """A ledger entry about to be appended."""

    product_id: UUID
    location_id: UUID
    kind: str
    change_on_hand: int = 0
    change_reserved: int = 0
    change_on_order: int = 0
    reference_id: str | None = None
    sales_order_line_id: UUID | None = None
    notes: str | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", getattr(self.kind, "value", self.kind))
        if not (self.change_on_hand or self.change_reserved or self.change_on_order):
            raise InvalidQuantityError(0, "ledger entry carries no quantity change")


@dataclass(frozen=True)
class FulfillmentItem:
    """Requested quantity of one order line for a new fulfillment."""

    line_id: UUID
    quantity: int


# =============================================================================
# Operation results
# =============================================================================


@dataclass(frozen=True)
class AllocationResult(_Payload):
    line_id: UUID
    allocated_now: int
    fully_allocated: bool


@dataclass(frozen=True)
class OrderAllocationResult(_Payload):
    order_id: UUID
    fully_allocated: bool
    total_allocated: int


@dataclass(frozen=True)
class RevertResult(_Payload):
    line_id: UUID
    unreserved_qty: int


@dataclass(frozen=True)
class FulfillmentResult(_Payload):
    """
    Outcome of create_fulfillment.

    moved_qty came from the order's own reservations, newly_reserved_qty from
    free stock, backordered_qty is recorded on location-less lines.
    """

    fulfillment_id: UUID
    fulfillment_number: str
    moved_qty: int
    newly_reserved_qty: int
    backordered_qty: int


@dataclass(frozen=True)
class ShipmentResult(_Payload):
    fulfillment_id: UUID
    shipped_qty: int


@dataclass(frozen=True)
class ShipmentReversalResult(_Payload):
    """fallback_qty is the part returned to the default location."""

    fulfillment_id: UUID
    returned_qty: int
    fallback_qty: int


@dataclass(frozen=True)
class CancelFulfillmentResult(_Payload):
    fulfillment_id: UUID
    returned_qty: int


@dataclass(frozen=True)
class FulfillmentTransitionResult(_Payload):
    fulfillment_id: UUID
    status: str


@dataclass(frozen=True)
class BackorderSourcingResult(_Payload):
    fulfillment_id: UUID
    sourced_qty: int
    backordered_qty: int


@dataclass(frozen=True)
class OrderCommandResult(_Payload):
    order_id: UUID
    status: str


@dataclass(frozen=True)
class OrderCancellationResult(_Payload):
    order_id: UUID
    cancelled_fulfillments: int
    unreserved_qty: int


@dataclass(frozen=True)
class StockMovementResult(_Payload):
    """Result of receipts, purchase orders and adjustments."""

    entry_id: UUID
    quantity: int


@dataclass(frozen=True)
class TransferResult(_Payload):
    from_entry_id: UUID
    to_entry_id: UUID
    quantity: int


@dataclass(frozen=True)
class ReceiptReversalResult(_Payload):
    reference_id: str
    reverted_qty: int


# =============================================================================
# Read model
# =============================================================================


@dataclass(frozen=True)
class StockLevel:
    """Snapshot read model for one (product, location)."""

    product_id: UUID
    location_id: UUID
    on_hand: int
    reserved: int
    available: int
    on_order: int

    @classmethod
    def from_model(cls, model: StockSnapshotModel) -> StockLevel:
        return cls(
            product_id=model.product_id,
            location_id=model.location_id,
            on_hand=model.on_hand,
            reserved=model.reserved,
            available=model.available,
            on_order=model.on_order,
        )

    @classmethod
    def empty(cls, product_id: UUID, location_id: UUID) -> StockLevel:
        return cls(product_id, location_id, 0, 0, 0, 0)


@dataclass(frozen=True)
class LedgerEntryRecord:
    """Read-only view of a persisted ledger entry."""

    id: UUID
    seq: int
    product_id: UUID
    location_id: UUID
    kind: str
    change_on_hand: int
    change_reserved: int
    change_on_order: int
    reference_id: str | None
    sales_order_line_id: UUID | None
    idempotency_key: str | None
    notes: str | None
    created_at: datetime | None

    @classmethod
    def from_model(cls, model: LedgerEntryModel) -> LedgerEntryRecord:
        return cls(
            id=model.id,
            seq=model.seq,
            product_id=model.product_id,
            location_id=model.location_id,
            kind=str(getattr(model.kind, "value", model.kind)),
            change_on_hand=model.change_on_hand,
            change_reserved=model.change_reserved,
            change_on_order=model.change_on_order,
            reference_id=model.reference_id,
            sales_order_line_id=model.sales_order_line_id,
            idempotency_key=model.idempotency_key,
            notes=model.notes,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class SnapshotDrift:
    """Snapshot row that disagrees with the ledger fold for its key."""

    product_id: UUID
    location_id: UUID
    snapshot: tuple[int, int, int]
    ledger: tuple[int, int, int]


@dataclass(frozen=True)
class LineDrift:
    """Order line whose cached counters disagree with ledger attribution."""

    line_id: UUID
    cached_allocated: int
    cached_fulfilled: int
    ledger_allocated: int
    ledger_fulfilled: int
    repairable: bool = True


@dataclass(frozen=True)
class ReconciliationReport:
    snapshot_drifts: tuple[SnapshotDrift, ...]
    line_drifts: tuple[LineDrift, ...]
    repaired: bool = False

    @property
    def is_clean(self) -> bool:
        return not self.snapshot_drifts and not self.line_drifts
