"""
Pure allocation helpers: share -> integer amount, and batching.
"""

import math
from typing import Iterator, List, Sequence, Tuple, TypeVar

from holder_rewards.services.holder_snapshot import Holder


T = TypeVar("T")


def compute_allocations(total_amount: int, holders: Sequence[Holder]) -> List[Tuple[str, int]]:
    """
    Integer payout per holder, in snapshot order.

    Amounts are rounded down and holders whose amount rounds to zero are
    dropped. The remainder stays with the payer, at most one unit per holder.
    """
    allocations = []
    for holder in holders:
        amount = math.floor(total_amount * holder.share)
        if amount <= 0:
            continue
        allocations.append((holder.address, amount))
    return allocations


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])
