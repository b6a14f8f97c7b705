"""
inventory_services -- transaction-boundary orchestration.

``InventoryOperations`` is the public entrypoint for every inventory
operation; ``build_operations`` wires it from the active configuration.
"""

from inventory_services.operations import InventoryOperations, build_operations

__all__ = ["InventoryOperations", "build_operations"]
