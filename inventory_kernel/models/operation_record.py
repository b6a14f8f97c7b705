"""
Module: inventory_kernel.models.operation_record
Responsibility: Stored outcome of every operation invoked with an idempotency
    key, so a retried call returns the original result without re-running
    business logic or taking locks.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - idempotency_key is UNIQUE.
    - Rows are immutable once written (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base


class OperationRecord(Base):
    """Outcome of one idempotent operation."""

    __tablename__ = "operation_records"

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Operation name, e.g. "allocate_line"
    operation: Mapped[str] = mapped_column(String(50), nullable=False)

    result_payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<OperationRecord {self.operation} key={self.idempotency_key}>"
