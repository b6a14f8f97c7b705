"""
Module: inventory_kernel.models.ledger
Responsibility: ORM persistence for the append-only inventory ledger.  Each row
    is one signed quantity change (on-hand, reserved, on-order) for a single
    (product, location) pair, together with the reference id of the business
    document that caused it.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Append-only: rows are never updated or deleted (ORM listeners in
      db/immutability.py raise ImmutabilityViolationError).
    - Idempotency: idempotency_key is UNIQUE across the whole ledger.
    - Ordering: seq is UNIQUE and strictly increasing per stock key in append
      order, drawn from SequenceService after the snapshot row is locked.

Failure modes:
    - IntegrityError on duplicate idempotency_key (concurrent retry race).
    - ImmutabilityViolationError on any UPDATE/DELETE.

Audit relevance:
    The ledger is the authoritative history.  Snapshots and order-line
    counters are caches that must always equal a fold of these rows.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class LedgerEntryKind(str, Enum):
    """Cause of a ledger entry."""

    RECEIPT = "receipt"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    RESERVE = "reserve"
    UNRESERVE = "unreserve"
    RETURN = "return"
    TRANSFER = "transfer"
    PURCHASE_ORDER = "purchase_order"


class LedgerEntry(Base):
    """
    One immutable inventory movement.

    Contract:
        Written only by LedgerStore.append(), which projects the deltas onto
        the (product, location) snapshot in the same transaction.

    Guarantees:
        - seq is unique and monotonic.
        - idempotency_key, when present, is unique ledger-wide.
        - sales_order_line_id, when present, attributes reserved/on-hand
          deltas to the order line that caused them.

    Non-goals:
        - Does not validate balances; the snapshot projector does.
    """

    __tablename__ = "inventory_ledger"

    __table_args__ = (
        # Query: per-key fold (reconciliation, history lookups)
        Index("idx_ledger_product_location", "product_id", "location_id"),
        # Query: audit timeline and bucket folds by reference
        Index("idx_ledger_reference", "reference_id"),
        # Query: per-line attribution folds
        Index("idx_ledger_order_line", "sales_order_line_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

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

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    change_on_hand: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    change_reserved: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    change_on_order: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # SO:<order id>, FUL:<fulfillment id>, or caller-supplied receipt/PO refs
    reference_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    sales_order_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("sales_order_lines.id"),
        nullable=True,
    )

    idempotency_key: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry #{self.seq} {self.kind} "
            f"on_hand={self.change_on_hand:+d} reserved={self.change_reserved:+d}>"
        )
