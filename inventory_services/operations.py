"""
InventoryOperations -- transaction boundary for every inventory operation.

Responsibility:
    Builds the kernel services once per session and exposes the public
    operations (receipts, allocation, fulfillment, shipment, reversal,
    order commands, reconciliation) plus the stock read model.  Each
    mutating call is one atomic transaction: it commits on success and
    rolls back on failure.

Architecture position:
    Services layer -- the only place that calls ``session.commit()``.
    Reads configuration values from EngineConfig and passes them into
    kernel services; the kernel never imports inventory_config.

Idempotency:
    Every mutating operation accepts an optional ``idempotency_key``.
    A known key short-circuits to the stored result before any lock is
    taken.  Ledger entries written under a key carry derived keys
    ``"<key>:<n>"``.  When a concurrent transaction wins the race for the
    same key, the loser rolls back and replays the winner's stored result.

Failure modes:
    - IdempotencyKeyReuseError: key already used by a different operation.
    - InvariantViolationError: aborted, whole transaction rolled back.
    - NotFoundError subclasses, IllegalStateTransitionError, QuantityError
      subclasses: caller errors, rolled back, nothing written.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_config import get_active_config
from inventory_config.schema import EngineConfig
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AllocationResult,
    BackorderSourcingResult,
    CancelFulfillmentResult,
    FulfillmentItem,
    FulfillmentResult,
    FulfillmentTransitionResult,
    LedgerEntryRecord,
    OrderAllocationResult,
    OrderCancellationResult,
    OrderCommandResult,
    ReceiptReversalResult,
    ReconciliationReport,
    RevertResult,
    ShipmentResult,
    ShipmentReversalResult,
    StockLevel,
    StockMovementResult,
    TransferResult,
)
from inventory_kernel.domain.fulfillment_lifecycle import FulfillmentAction
from inventory_kernel.exceptions import DuplicateOperationError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.allocation_service import AllocationService
from inventory_kernel.services.entity_loader import EntityLoader
from inventory_kernel.services.fulfillment_service import FulfillmentService
from inventory_kernel.services.idempotency_service import IdempotencyService
from inventory_kernel.services.ledger_store import LedgerStore
from inventory_kernel.services.order_status_service import OrderStatusService
from inventory_kernel.services.receiving_service import ReceivingService
from inventory_kernel.services.reconciliation_service import ReconciliationService
from inventory_kernel.services.reversal_service import ReversalService

logger = get_logger("services.operations")

R = TypeVar("R")


class InventoryOperations:
    """
    Public facade over the inventory kernel.

    Contract:
        Receives a Session and optional EngineConfig / Clock / actor id.
        Constructs every kernel service exactly once; all share the same
        Session and Clock.

    Guarantees:
        - One transaction per mutating call (when auto_commit=True).
        - A retried call with the same idempotency key returns a result
          equal to the original and writes nothing.

    Non-goals:
        - Does NOT create master data (products, locations, orders).
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._auto_commit = auto_commit

        # Order matters: each service depends on the ones above it
        self.ledger = LedgerStore(session, self._clock, actor_id)
        self.loader = EntityLoader(
            session, default_location_name=self._config.locations.default_location
        )
        self.status_service = OrderStatusService(session)
        self.allocation = AllocationService(session, self.ledger, self.loader, self.status_service)
        self.fulfillment = FulfillmentService(
            session,
            self.ledger,
            self.loader,
            self.status_service,
            self.allocation,
            clock=self._clock,
            number_prefix=self._config.fulfillment.number_prefix,
        )
        self.reversal = ReversalService(session, self.ledger, self.loader, self.status_service)
        self.receiving = ReceivingService(session, self.ledger, self.loader)
        self.reconciliation = ReconciliationService(
            session, self.ledger.projector, self.status_service
        )
        self.idempotency = IdempotencyService(session)
        self.stock = StockSelector(session)
        self.ledger_reader = LedgerSelector(session)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def config(self) -> EngineConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Transaction runner
    # -------------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        idempotency_key: str | None,
        fn: Callable[[], R],
        result_cls: Any = None,
    ) -> R:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation=operation,
            idempotency_key=idempotency_key,
            actor_id=str(self._actor_id) if self._actor_id else None,
        ):
            if idempotency_key is not None:
                cached = self.idempotency.lookup(idempotency_key, operation)
                if cached is not None:
                    logger.info("operation_replayed")
                    return result_cls.from_payload(cached)

            logger.debug("operation_started")
            t0 = time.monotonic()
            try:
                with self.ledger.operation_scope(idempotency_key):
                    result = fn()
                if idempotency_key is not None:
                    self.idempotency.record(idempotency_key, operation, result.to_payload())
                if self._auto_commit:
                    self._session.commit()
            except (IntegrityError, DuplicateOperationError):
                self._rollback()
                if idempotency_key is not None and self._auto_commit:
                    cached = self.idempotency.lookup(idempotency_key, operation)
                    if cached is not None:
                        logger.info("operation_replayed_after_race")
                        return result_cls.from_payload(cached)
                raise
            except Exception:
                self._rollback()
                raise

            logger.info(
                "operation_completed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
            )
            return result

    def _rollback(self) -> None:
        if not self._auto_commit:
            return
        self._session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    def book_receipt(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        reference_id: str | None = None,
        clears_on_order: bool = False,
        idempotency_key: str | None = None,
    ) -> StockMovementResult:
        with LogContext.bind(reference_id=reference_id):
            return self._run(
                "book_receipt",
                idempotency_key,
                lambda: self.receiving.book_receipt(
                    product_id, location_id, quantity, reference_id, clears_on_order
                ),
                StockMovementResult,
            )

    def book_purchase_order(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> StockMovementResult:
        with LogContext.bind(reference_id=reference_id):
            return self._run(
                "book_purchase_order",
                idempotency_key,
                lambda: self.receiving.book_purchase_order(
                    product_id, location_id, quantity, reference_id
                ),
                StockMovementResult,
            )

    def revert_receipt(
        self, reference_id: str, idempotency_key: str | None = None
    ) -> ReceiptReversalResult:
        with LogContext.bind(reference_id=reference_id):
            return self._run(
                "revert_receipt",
                idempotency_key,
                lambda: self.receiving.revert_receipt(reference_id),
                ReceiptReversalResult,
            )

    def adjust_stock(
        self,
        product_id: UUID,
        location_id: UUID,
        delta: int,
        reason: str,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> StockMovementResult:
        return self._run(
            "adjust_stock",
            idempotency_key,
            lambda: self.receiving.adjust_stock(
                product_id, location_id, delta, reason, reference_id
            ),
            StockMovementResult,
        )

    def transfer_stock(
        self,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity: int,
        reference_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        return self._run(
            "transfer_stock",
            idempotency_key,
            lambda: self.receiving.transfer_stock(
                product_id, from_location_id, to_location_id, quantity, reference_id
            ),
            TransferResult,
        )

    # -------------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------------

    def allocate_line(
        self, line_id: UUID, idempotency_key: str | None = None
    ) -> AllocationResult:
        return self._run(
            "allocate_line",
            idempotency_key,
            lambda: self.allocation.allocate_line(line_id),
            AllocationResult,
        )

    def allocate_order(
        self, order_id: UUID, idempotency_key: str | None = None
    ) -> OrderAllocationResult:
        return self._run(
            "allocate_order",
            idempotency_key,
            lambda: self.allocation.allocate_order(order_id),
            OrderAllocationResult,
        )

    def revert_line_allocation(
        self, line_id: UUID, idempotency_key: str | None = None
    ) -> RevertResult:
        return self._run(
            "revert_line_allocation",
            idempotency_key,
            lambda: self.reversal.revert_line_allocation(line_id),
            RevertResult,
        )

    # -------------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------------

    def create_fulfillment(
        self,
        order_id: UUID,
        items: Sequence[FulfillmentItem],
        idempotency_key: str | None = None,
    ) -> FulfillmentResult:
        return self._run(
            "create_fulfillment",
            idempotency_key,
            lambda: self.fulfillment.create_fulfillment(order_id, list(items)),
            FulfillmentResult,
        )

    def start_picking(
        self, fulfillment_id: UUID, idempotency_key: str | None = None
    ) -> FulfillmentTransitionResult:
        return self._run(
            "start_picking",
            idempotency_key,
            lambda: self.fulfillment.transition(fulfillment_id, FulfillmentAction.START_PICKING),
            FulfillmentTransitionResult,
        )

    def mark_packed(
        self, fulfillment_id: UUID, idempotency_key: str | None = None
    ) -> FulfillmentTransitionResult:
        return self._run(
            "mark_packed",
            idempotency_key,
            lambda: self.fulfillment.transition(fulfillment_id, FulfillmentAction.MARK_PACKED),
            FulfillmentTransitionResult,
        )

    def source_backorders(
        self, fulfillment_id: UUID, idempotency_key: str | None = None
    ) -> BackorderSourcingResult:
        return self._run(
            "source_backorders",
            idempotency_key,
            lambda: self.fulfillment.source_backorders(fulfillment_id),
            BackorderSourcingResult,
        )

    def ship_fulfillment(
        self, fulfillment_id: UUID, idempotency_key: str | None = None
    ) -> ShipmentResult:
        return self._run(
            "ship_fulfillment",
            idempotency_key,
            lambda: self.fulfillment.ship_fulfillment(fulfillment_id),
            ShipmentResult,
        )

    def revert_fulfillment_shipment(
        self, fulfillment_id: UUID, idempotency_key: str | None = None
    ) -> ShipmentReversalResult:
        return self._run(
            "revert_fulfillment_shipment",
            idempotency_key,
            lambda: self.reversal.revert_fulfillment_shipment(fulfillment_id),
            ShipmentReversalResult,
        )

    def cancel_fulfillment(
        self, fulfillment_id: UUID, idempotency_key: str | None = None
    ) -> CancelFulfillmentResult:
        return self._run(
            "cancel_fulfillment",
            idempotency_key,
            lambda: self.reversal.cancel_fulfillment(fulfillment_id),
            CancelFulfillmentResult,
        )

    # -------------------------------------------------------------------------
    # Order commands
    # -------------------------------------------------------------------------

    def confirm_order(
        self, order_id: UUID, idempotency_key: str | None = None
    ) -> OrderCommandResult:
        def _confirm() -> OrderCommandResult:
            order = self.loader.lock_order(order_id)
            status = self.status_service.confirm(order)
            return OrderCommandResult(order_id=order.id, status=status.value)

        return self._run("confirm_order", idempotency_key, _confirm, OrderCommandResult)

    def cancel_order(
        self, order_id: UUID, idempotency_key: str | None = None
    ) -> OrderCancellationResult:
        return self._run(
            "cancel_order",
            idempotency_key,
            lambda: self.reversal.cancel_order(order_id),
            OrderCancellationResult,
        )

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def reconcile(self, repair: bool = False) -> ReconciliationReport:
        """Drift report; with ``repair`` the caches are rewritten from the ledger."""
        return self._run(
            "reconcile",
            None,
            lambda: self.reconciliation.reconcile(repair=repair),
        )

    # -------------------------------------------------------------------------
    # Read model
    # -------------------------------------------------------------------------

    def stock_level(self, product_id: UUID, location_id: UUID) -> StockLevel:
        return self.stock.stock_level(product_id, location_id)

    def stock_levels(self, product_id: UUID) -> list[StockLevel]:
        return self.stock.stock_levels(product_id)

    def stock_totals(self, product_id: UUID) -> dict[str, int]:
        return self.stock.totals(product_id)

    def ledger_for_reference(self, reference_id: str) -> list[LedgerEntryRecord]:
        return self.ledger_reader.entries_for_reference(reference_id)

    def ledger_for_line(self, line_id: UUID) -> list[LedgerEntryRecord]:
        return self.ledger_reader.entries_for_line(line_id)


def build_operations(
    session: Session,
    config: EngineConfig | None = None,
    clock: Clock | None = None,
    actor_id: UUID | None = None,
) -> InventoryOperations:
    """Wire InventoryOperations from ``config`` or the active configuration."""
    return InventoryOperations(
        session,
        config=config or get_active_config(),
        clock=clock,
        actor_id=actor_id,
    )
