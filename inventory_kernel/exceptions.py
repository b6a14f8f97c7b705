"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock operations fail for very different reasons and callers must react to
each one differently:

  - A replayed request (same idempotency key) is not an error at all.
  - A would-be negative balance is a logic or data-race bug that needs an
    operator, never a retry.
  - A missing order line or an illegal lifecycle move is a caller error.

Every error therefore has a TYPED exception class, a machine-readable CODE
class attribute, and carries its context as structured attributes (never
only inside the message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- IdempotencyError
    |   +-- DuplicateOperationError
    |   +-- IdempotencyKeyReuseError
    |
    +-- InvariantViolationError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- LocationNotFoundError
    |   +-- DefaultLocationNotConfiguredError
    |   +-- OrderNotFoundError
    |   +-- OrderLineNotFoundError
    |   +-- FulfillmentNotFoundError
    |   +-- ReferenceNotFoundError
    |
    +-- IllegalStateTransitionError
    |
    +-- QuantityError
    |   +-- InvalidQuantityError
    |   +-- QuantityExceedsOutstandingError
    |
    +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|--------------------------------------
Idempotency     | DUPLICATE_OPERATION           | Key already applied (replay, not error)
                | IDEMPOTENCY_KEY_REUSE         | Key reused for a different operation
----------------|-------------------------------|--------------------------------------
Invariant       | INVARIANT_VIOLATION           | on_hand/reserved/on_order would go < 0
----------------|-------------------------------|--------------------------------------
Not found       | PRODUCT_NOT_FOUND             | Product id unknown
                | LOCATION_NOT_FOUND            | Location id unknown
                | DEFAULT_LOCATION_NOT_CONFIGURED| No fallback bin for a reversal
                | ORDER_NOT_FOUND               | Sales order id unknown
                | ORDER_LINE_NOT_FOUND          | Sales order line id unknown
                | FULFILLMENT_NOT_FOUND         | Fulfillment id unknown
                | REFERENCE_NOT_FOUND           | No receipts booked under a reference
----------------|-------------------------------|--------------------------------------
State           | ILLEGAL_STATE_TRANSITION      | e.g. shipping a shipped fulfillment
----------------|-------------------------------|--------------------------------------
Quantity        | INVALID_QUANTITY              | Zero/negative where positive required
                | QUANTITY_EXCEEDS_OUTSTANDING  | Fulfillment asks for more than is open
----------------|-------------------------------|--------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | UPDATE/DELETE of a ledger row
----------------|-------------------------------|--------------------------------------
Configuration   | CONFIGURATION_ERROR           | Invalid engine configuration

===============================================================================
HANDLING PATTERNS
===============================================================================

1. IDEMPOTENT REPLAY (DuplicateOperationError is success):

    try:
        entry_id = ledger_store.append(draft)
    except DuplicateOperationError as e:
        entry_id = e.existing_entry_id

2. INVARIANT VIOLATIONS (operator attention, never auto-retry):

    except InvariantViolationError as e:
        alert_operations(e.product_id, e.location_id, e.code)
        raise

3. SHORTFALL IS NOT AN EXCEPTION:

    result = operations.allocate_line(line_id)
    if not result.fully_allocated:
        ...  # partial coverage is a normal outcome
"""

from uuid import UUID


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Idempotency


class IdempotencyError(InventoryKernelError):
    """Base exception for idempotency-key errors."""

    code: str = "IDEMPOTENCY_ERROR"


class DuplicateOperationError(IdempotencyError):
    """
    The idempotency key has already been applied.

    Not a user error: callers treat this as "already applied" and return the
    prior result.
    """

    code: str = "DUPLICATE_OPERATION"

    def __init__(
        self,
        idempotency_key: str,
        existing_entry_id: UUID | None = None,
        operation: str | None = None,
    ):
        self.idempotency_key = idempotency_key
        self.existing_entry_id = existing_entry_id
        self.operation = operation
        super().__init__(f"Idempotency key already applied: {idempotency_key}")


class IdempotencyKeyReuseError(IdempotencyError):
    """The idempotency key was recorded for a different operation."""

    code: str = "IDEMPOTENCY_KEY_REUSE"

    def __init__(self, idempotency_key: str, recorded_operation: str, attempted_operation: str):
        self.idempotency_key = idempotency_key
        self.recorded_operation = recorded_operation
        self.attempted_operation = attempted_operation
        super().__init__(
            f"Idempotency key {idempotency_key} was used for "
            f"'{recorded_operation}', cannot reuse it for '{attempted_operation}'"
        )


# Invariants


class InvariantViolationError(InventoryKernelError):
    """
    A ledger append would drive a snapshot balance negative.

    Fatal to the transaction: the whole multi-entry operation is rolled back.
    Indicates a logic or data-race bug and requires operator attention.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(
        self,
        product_id: UUID,
        location_id: UUID,
        on_hand: int,
        reserved: int,
        on_order: int = 0,
        reason: str = "negative balance",
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.on_hand = on_hand
        self.reserved = reserved
        self.on_order = on_order
        self.reason = reason
        super().__init__(
            f"Invariant violation for product {product_id} at location "
            f"{location_id}: {reason} (on_hand={on_hand}, reserved={reserved}, "
            f"on_order={on_order})"
        )


# Not found


class NotFoundError(InventoryKernelError):
    """Base exception for missing references (caller error)."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: UUID):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class LocationNotFoundError(NotFoundError):
    """Location with given ID was not found."""

    code: str = "LOCATION_NOT_FOUND"

    def __init__(self, location_id: UUID | str):
        self.location_id = location_id
        super().__init__(f"Location not found: {location_id}")


class DefaultLocationNotConfiguredError(NotFoundError):
    """No fallback location exists for a reversal without history."""

    code: str = "DEFAULT_LOCATION_NOT_CONFIGURED"

    def __init__(self):
        super().__init__(
            "No default location is configured or flagged is_default"
        )


class OrderNotFoundError(NotFoundError):
    """Sales order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: UUID):
        self.order_id = order_id
        super().__init__(f"Sales order not found: {order_id}")


class OrderLineNotFoundError(NotFoundError):
    """Sales order line with given ID was not found."""

    code: str = "ORDER_LINE_NOT_FOUND"

    def __init__(self, line_id: UUID, order_id: UUID | None = None):
        self.line_id = line_id
        self.order_id = order_id
        if order_id is not None:
            super().__init__(f"Sales order line {line_id} not found on order {order_id}")
        else:
            super().__init__(f"Sales order line not found: {line_id}")


class FulfillmentNotFoundError(NotFoundError):
    """Fulfillment with given ID was not found."""

    code: str = "FULFILLMENT_NOT_FOUND"

    def __init__(self, fulfillment_id: UUID):
        self.fulfillment_id = fulfillment_id
        super().__init__(f"Fulfillment not found: {fulfillment_id}")


class ReferenceNotFoundError(NotFoundError):
    """No ledger entries of the expected kind exist for a reference id."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, reference_id: str, kind: str):
        self.reference_id = reference_id
        self.kind = kind
        super().__init__(f"No {kind} entries found for reference {reference_id}")


# Lifecycle


class IllegalStateTransitionError(InventoryKernelError):
    """The requested action is not legal from the entity's current state."""

    code: str = "ILLEGAL_STATE_TRANSITION"

    def __init__(self, entity_type: str, entity_id: UUID, current_state: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in state '{current_state}'"
        )


# Quantities


class QuantityError(InventoryKernelError):
    """Base exception for quantity validation errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """Quantity is zero, negative or otherwise unusable for the operation."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


class QuantityExceedsOutstandingError(QuantityError):
    """Requested fulfillment quantity exceeds what is still open on the line."""

    code: str = "QUANTITY_EXCEEDS_OUTSTANDING"

    def __init__(self, line_id: UUID, requested: int, outstanding: int):
        self.line_id = line_id
        self.requested = requested
        self.outstanding = outstanding
        super().__init__(
            f"Line {line_id}: requested {requested} exceeds outstanding {outstanding}"
        )


# Immutability


class ImmutabilityViolationError(InventoryKernelError):
    """Attempted UPDATE or DELETE of an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# Configuration


class ConfigurationError(InventoryKernelError):
    """Engine configuration is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration '{field}': {reason}")
