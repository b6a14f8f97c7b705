#!/usr/bin/env python3
"""
Compare cached inventory state with the ledger and optionally repair it.

Recomputes every (product, location) snapshot from the ledger fold and
every order line's allocated/fulfilled counters from ledger attribution,
prints the rows that disagree, and exits non-zero when drift was found.

Usage:
    python3 scripts/reconcile_inventory.py
    python3 scripts/reconcile_inventory.py --config path/to/inventory.yaml --repair
    python3 scripts/reconcile_inventory.py --database-url postgresql://inventory@localhost/inventory
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile inventory caches against the ledger")
    parser.add_argument("--config", type=Path, help="YAML configuration file (default: bundled defaults)")
    parser.add_argument("--database-url", help="Override database.url from the configuration")
    parser.add_argument("--repair", action="store_true", help="Rewrite drifted caches from the ledger")
    args = parser.parse_args()

    from inventory_config import get_active_config
    from inventory_kernel.db.engine import init_engine_from_url, session_scope
    from inventory_kernel.db.immutability import register_immutability_listeners
    from inventory_kernel.logging_config import configure_logging
    from inventory_services import InventoryOperations

    try:
        config = get_active_config(args.config)
    except Exception as exc:
        print(f"  ERROR: could not load configuration: {exc}", file=sys.stderr)
        return 1

    configure_logging(level=config.logging.level.upper())
    url = args.database_url or config.database.url
    try:
        init_engine_from_url(
            url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    register_immutability_listeners()

    with session_scope() as session:
        report = InventoryOperations(session, config=config).reconcile(repair=args.repair)

    if report.is_clean:
        print("  Ledger and caches agree.")
        return 0

    print(f"  Snapshot drift: {len(report.snapshot_drifts)}")
    for drift in report.snapshot_drifts:
        print(
            f"    product={drift.product_id} location={drift.location_id}"
            f"  snapshot(on_hand, reserved, on_order)={drift.snapshot}"
            f"  ledger={drift.ledger}"
        )

    print(f"  Order line drift: {len(report.line_drifts)}")
    for drift in report.line_drifts:
        flag = "" if drift.repairable else "  NOT REPAIRABLE"
        print(
            f"    line={drift.line_id}"
            f"  cached(allocated, fulfilled)=({drift.cached_allocated}, {drift.cached_fulfilled})"
            f"  ledger=({drift.ledger_allocated}, {drift.ledger_fulfilled}){flag}"
        )

    if report.repaired:
        print("  Repaired from the ledger.")
    return 2


if __name__ == "__main__":
    sys.exit(main())
