"""
Ledger reference ids for reservation buckets.

Reservations are grouped into buckets by the ledger ``reference_id``:
``SO:<order id>`` holds stock promised to an order but not yet assigned to a
shipment, ``FUL:<fulfillment id>`` holds stock moved into a shipment unit.
"""

from uuid import UUID

ORDER_PREFIX = "SO:"
FULFILLMENT_PREFIX = "FUL:"


def order_reference(order_id: UUID) -> str:
    return f"{ORDER_PREFIX}{order_id}"


def fulfillment_reference(fulfillment_id: UUID) -> str:
    return f"{FULFILLMENT_PREFIX}{fulfillment_id}"


def parse_reference(reference_id: str) -> tuple[str, UUID] | None:
    """
    Split an engine-generated reference into (bucket kind, entity id).

    Returns None for caller-supplied references (receipts, purchase orders).
    """
    for prefix, kind in ((ORDER_PREFIX, "order"), (FULFILLMENT_PREFIX, "fulfillment")):
        if reference_id.startswith(prefix):
            try:
                return kind, UUID(reference_id[len(prefix):])
            except ValueError:
                return None
    return None
