"""
Declarative bases for the inventory ORM models.

Every table gets a uuid4 primary key, stored as a 36-character string so the
same schema runs on PostgreSQL and SQLite.  Plain ``int`` annotations map to
BigInteger: stock is counted in whole units and ledger seq values only grow.

Nothing here may import from models/, services/ or selectors/.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column persisted as its canonical string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TimestampedBase(Base):
    """
    Mutable master and order rows.

    ``created_at`` is stamped by the database on insert; ``updated_at``
    follows every UPDATE.  Ledger entries do not use this base: their
    ``created_at`` comes from the injected Clock and they are never updated.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
