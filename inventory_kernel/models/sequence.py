"""
Module: inventory_kernel.models.sequence
Responsibility: Number sources for ledger ordering and human-readable
    document numbers.
Architecture position: Kernel > Models.  May import from db/base.py only.

On PostgreSQL each name is a database SEQUENCE: ``nextval`` takes no row
lock, so writers on unrelated stock keys never queue behind one another.
SQLite has no sequences; there each name is a counter row, which costs
nothing extra because every SQLite writer already holds the database lock.
"""

from sqlalchemy import BigInteger, Sequence, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base

# Created and dropped with the metadata; ignored by SQLite.
LEDGER_SEQ = Sequence("inventory_ledger_seq", start=1, metadata=Base.metadata)
FULFILLMENT_NUMBER_SEQ = Sequence("fulfillment_number_seq", start=1, metadata=Base.metadata)


class SequenceCounter(Base):
    """Counter row per name, for backends without SEQUENCE support."""

    __tablename__ = "sequence_counters"

    # e.g. "inventory_ledger", "fulfillment_number"
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
