"""
Inventory Kernel

An append-only inventory ledger with:
- Synchronous per-(product, location) snapshot projection
- Largest-bin-first allocation of physical stock to sales demand
- Reservation moves into fulfillments, shipment and compensating reversals
- Idempotent operations and pessimistic row locking
- A single derived order-status resolver
"""

__version__ = "0.1.0"
