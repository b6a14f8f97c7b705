"""
IdempotencyService -- stored outcomes for tokenized operations.

Responsibility:
    Look up and record the result of each operation invoked with an
    idempotency key, so a retried call short-circuits to the original result
    before any lock is taken or any business logic runs.

Architecture position:
    Kernel > Services.  Used only by the InventoryOperations orchestrator.

Invariants enforced:
    - One OperationRecord per key (UNIQUE); the record is written in the
      same transaction as the ledger entries it summarizes.
    - A key recorded for one operation cannot be replayed as another.

Failure modes:
    - IdempotencyKeyReuseError: key already used for a different operation.
    - IntegrityError on flush: a concurrent transaction recorded the key
      first; the orchestrator rolls back and replays.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.exceptions import IdempotencyKeyReuseError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.operation_record import OperationRecord

logger = get_logger("services.idempotency")


class IdempotencyService:
    """Operation outcome cache backed by the operation_records table."""

    def __init__(self, session: Session):
        self._session = session

    def lookup(self, idempotency_key: str, operation: str) -> dict[str, Any] | None:
        """
        Return the stored payload for a key, or None if the key is new.

        Raises:
            IdempotencyKeyReuseError: If the key belongs to another operation.
        """
        record = self._session.execute(
            select(OperationRecord).where(OperationRecord.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if record is None:
            return None
        if record.operation != operation:
            logger.warning(
                "idempotency_key_reused",
                extra={
                    "recorded_operation": record.operation,
                    "attempted_operation": operation,
                },
            )
            raise IdempotencyKeyReuseError(idempotency_key, record.operation, operation)
        return dict(record.result_payload)

    def record(self, idempotency_key: str, operation: str, payload: dict[str, Any]) -> None:
        self._session.add(
            OperationRecord(
                idempotency_key=idempotency_key,
                operation=operation,
                result_payload=payload,
            )
        )
        self._session.flush()
        logger.debug("operation_recorded", extra={"recorded_operation": operation})
