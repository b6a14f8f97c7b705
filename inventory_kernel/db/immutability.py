"""
ORM-Level Immutability Enforcement for append-only inventory records.

===============================================================================
WHY THIS EXISTS
===============================================================================

The inventory ledger is the authoritative history of every stock movement.
Snapshots and order-line counters are caches that can always be rebuilt from
it, which is only true if ledger rows never change after they are written.
Corrections are new compensating entries, never edits.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update event] --> _check_*_update() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable          | Why
------------------|-------------------------|-----------------------------------
LedgerEntry       | ALWAYS (from creation)  | Snapshots are a fold of the ledger
OperationRecord   | ALWAYS (from creation)  | Replays must return the original

Bulk ``session.execute(update(...))`` statements bypass mapper events; the
kernel never issues them against these tables.

===============================================================================
USAGE
===============================================================================

Called once at application startup:

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "db_operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_ledger_entry_update(mapper, connection, target):
    """Prevent any update to a LedgerEntry."""
    _block("LedgerEntry", target, "UPDATE", "Ledger entries are append-only")


def _check_ledger_entry_delete(mapper, connection, target):
    """Prevent deletion of a LedgerEntry."""
    _block(
        "LedgerEntry", target, "DELETE",
        "Ledger entries cannot be deleted; append a compensating entry",
    )


def _check_operation_record_update(mapper, connection, target):
    _block("OperationRecord", target, "UPDATE", "Operation outcomes are immutable")


def _check_operation_record_delete(mapper, connection, target):
    _block("OperationRecord", target, "DELETE", "Operation outcomes cannot be deleted")


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners that are already registered are not added twice.
    """
    from inventory_kernel.models.ledger import LedgerEntry
    from inventory_kernel.models.operation_record import OperationRecord

    for target, event_name, fn in _listeners(LedgerEntry, OperationRecord):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)

    logger.debug("immutability_listeners_registered")


def _listeners(ledger_entry_cls, operation_record_cls):
    return [
        (ledger_entry_cls, "before_update", _check_ledger_entry_update),
        (ledger_entry_cls, "before_delete", _check_ledger_entry_delete),
        (operation_record_cls, "before_update", _check_operation_record_update),
        (operation_record_cls, "before_delete", _check_operation_record_delete),
    ]


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to corrupt data on purpose,
    e.g. to exercise reconciliation drift detection.
    """
    from inventory_kernel.models.ledger import LedgerEntry
    from inventory_kernel.models.operation_record import OperationRecord

    for target, event_name, fn in _listeners(LedgerEntry, OperationRecord):
        _safe_remove_listener(target, event_name, fn)
