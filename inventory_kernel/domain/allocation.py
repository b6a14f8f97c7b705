"""
Bin selection for reservations.

Responsibility:
    Decide which locations a reservation draws from, and how much from each,
    given the current sellable balances.  Pure: no I/O, no session.

Architecture position:
    Kernel > Domain.  Called by AllocationService and the fulfillment
    reallocator after they have locked the candidate snapshot rows.

Invariants enforced:
    - Largest bin first: candidates are consumed in descending available
      quantity, ties broken by ascending location id, so the same balances
      always yield the same plan regardless of storage-engine row order.
    - Never plans more than a candidate's available quantity, and never
      more than the amount needed in total.
"""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class BinCandidate:
    """A sellable location holding stock of the product being allocated."""

    location_id: UUID
    available: int


@dataclass(frozen=True)
class BinDraw:
    """Quantity to reserve at one location."""

    location_id: UUID
    quantity: int


def bin_sort_key(candidate: BinCandidate) -> tuple[int, str]:
    """Descending available, then ascending location id."""
    return (-candidate.available, str(candidate.location_id))


def rank_bins(candidates: list[BinCandidate]) -> list[BinCandidate]:
    """Candidates with stock, in draw order."""
    return sorted((c for c in candidates if c.available > 0), key=bin_sort_key)


def plan_allocation(candidates: list[BinCandidate], needed: int) -> list[BinDraw]:
    """
    Plan reservations covering up to ``needed`` units.

    Preconditions:
        ``needed`` may be zero or negative, in which case the plan is empty.

    Postconditions:
        sum(draw.quantity) == min(needed, total available); every draw is
        positive and at most its candidate's available quantity.
    """
    draws: list[BinDraw] = []
    remaining = needed
    for candidate in rank_bins(candidates):
        if remaining <= 0:
            break
        take = min(candidate.available, remaining)
        draws.append(BinDraw(location_id=candidate.location_id, quantity=take))
        remaining -= take
    return draws
