"""
ReconciliationService -- drift detection and repair of derived state.

Responsibility:
    Recomputes every snapshot from the ledger fold and every order line's
    allocated/fulfilled counters from ledger attribution, reports the rows
    that disagree, and optionally rewrites them.

Architecture position:
    Kernel > Services.  Invoked by InventoryOperations.reconcile() and by
    scripts/reconcile_inventory.py.

Invariants enforced:
    - The ledger is authoritative: repair always moves caches toward the
      fold, never the other way round.
    - Snapshot repair goes through SnapshotProjector.rebuild(), the only
      writer of snapshot rows.
    - A line whose ledger attribution would break allocated + fulfilled <=
      ordered is reported as not repairable and left untouched.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import LineDrift, ReconciliationReport, SnapshotDrift
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLine
from inventory_kernel.models.snapshot import StockSnapshot
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.order_status_service import OrderStatusService
from inventory_kernel.services.snapshot_projector import SnapshotProjector

logger = get_logger("services.reconciliation")


class ReconciliationService:
    """Compares caches with the ledger fold."""

    def __init__(
        self,
        session: Session,
        projector: SnapshotProjector,
        status_service: OrderStatusService,
    ):
        self._session = session
        self._projector = projector
        self._status = status_service
        self._ledger_selector = LedgerSelector(session)

    def reconcile(self, repair: bool = False) -> ReconciliationReport:
        snapshot_drifts = self._snapshot_drifts()
        line_drifts = self._line_drifts()

        if repair:
            self._repair_snapshots(snapshot_drifts)
            self._repair_lines(line_drifts)

        report = ReconciliationReport(
            snapshot_drifts=tuple(snapshot_drifts),
            line_drifts=tuple(line_drifts),
            repaired=repair,
        )
        log = logger.info if report.is_clean else logger.warning
        log(
            "reconciliation_completed",
            extra={
                "snapshot_drift_count": len(snapshot_drifts),
                "line_drift_count": len(line_drifts),
                "repaired": repair,
            },
        )
        return report

    def _snapshot_drifts(self) -> list[SnapshotDrift]:
        folds = self._ledger_selector.fold_balances()
        snapshots = {
            (s.product_id, s.location_id): s
            for s in self._session.execute(select(StockSnapshot)).scalars().all()
        }

        drifts: list[SnapshotDrift] = []
        for key in sorted(set(folds) | set(snapshots), key=lambda k: (str(k[0]), str(k[1]))):
            on_hand, reserved, on_order, _ = folds.get(key, (0, 0, 0, 0))
            snapshot = snapshots.get(key)
            cached = (
                (snapshot.on_hand, snapshot.reserved, snapshot.on_order)
                if snapshot is not None
                else (0, 0, 0)
            )
            if cached != (on_hand, reserved, on_order):
                drifts.append(
                    SnapshotDrift(
                        product_id=key[0],
                        location_id=key[1],
                        snapshot=cached,
                        ledger=(on_hand, reserved, on_order),
                    )
                )
        return drifts

    def _line_drifts(self) -> list[LineDrift]:
        attribution = self._ledger_selector.line_attribution()
        lines = self._session.execute(select(SalesOrderLine)).scalars().all()

        drifts: list[LineDrift] = []
        for line in sorted(lines, key=lambda l: str(l.id)):
            allocated, fulfilled = attribution.get(line.id, (0, 0))
            if (line.allocated, line.fulfilled) == (allocated, fulfilled):
                continue
            repairable = (
                allocated >= 0 and fulfilled >= 0 and allocated + fulfilled <= line.ordered
            )
            drifts.append(
                LineDrift(
                    line_id=line.id,
                    cached_allocated=line.allocated,
                    cached_fulfilled=line.fulfilled,
                    ledger_allocated=allocated,
                    ledger_fulfilled=fulfilled,
                    repairable=repairable,
                )
            )
        return drifts

    def _repair_snapshots(self, drifts: list[SnapshotDrift]) -> None:
        if not drifts:
            return
        folds = self._ledger_selector.fold_balances()
        for drift in drifts:
            _, _, _, last_seq = folds.get((drift.product_id, drift.location_id), (0, 0, 0, 0))
            on_hand, reserved, on_order = drift.ledger
            self._projector.rebuild(
                drift.product_id,
                drift.location_id,
                on_hand,
                reserved,
                on_order,
                last_seq,
            )

    def _repair_lines(self, drifts: list[LineDrift]) -> None:
        touched_orders: set[UUID] = set()
        for drift in drifts:
            if not drift.repairable:
                logger.error(
                    "line_drift_not_repairable",
                    extra={
                        "line_id": str(drift.line_id),
                        "ledger_allocated": drift.ledger_allocated,
                        "ledger_fulfilled": drift.ledger_fulfilled,
                    },
                )
                continue
            line = self._session.get(SalesOrderLine, drift.line_id)
            line.allocated = drift.ledger_allocated
            line.fulfilled = drift.ledger_fulfilled
            touched_orders.add(line.order_id)
            logger.warning(
                "line_counters_repaired",
                extra={
                    "line_id": str(drift.line_id),
                    "allocated": drift.ledger_allocated,
                    "fulfilled": drift.ledger_fulfilled,
                },
            )

        for order_id in sorted(touched_orders, key=str):
            order = self._session.get(SalesOrder, order_id)
            self._status.refresh(order)
