"""
Bounded subset-sum search used by the split matching passes.

Greedy first, then an exhaustive bitmask search over the largest
MAX_EXHAUSTIVE_CANDIDATES items. With more candidates than that on one day a
valid split can be missed; the bound keeps the work per call constant.
"""

from decimal import Decimal
from typing import Sequence

ZERO = Decimal("0")

# 2**10 subsets at most per call
MAX_EXHAUSTIVE_CANDIDATES = 10

MIN_SPLIT_SIZE = 2

Item = tuple[str, Decimal]


def find_combination_sum(
    items: Sequence[Item],
    target: Decimal,
    tolerance: Decimal,
    limit: int = MAX_EXHAUSTIVE_CANDIDATES,
) -> list[Item]:
    """
    Find at least two items whose amounts sum to target within tolerance.

    Args:
        items: (id, amount) pairs
        target: Amount to reach
        tolerance: Maximum absolute difference from target
        limit: How many of the largest items the exhaustive search considers

    Returns:
        The first qualifying combination, or an empty list
    """
    ordered = sorted(items, key=lambda item: item[1], reverse=True)

    greedy: list[Item] = []
    running = ZERO
    for item in ordered:
        if running + item[1] <= target + tolerance:
            greedy.append(item)
            running += item[1]
            if abs(running - target) <= tolerance:
                break

    if len(greedy) >= MIN_SPLIT_SIZE and abs(running - target) <= tolerance:
        return greedy

    limited = ordered[:limit]
    n = len(limited)
    for mask in range(1, 1 << n):
        subset = [limited[i] for i in range(n) if mask & (1 << i)]
        if len(subset) < MIN_SPLIT_SIZE:
            continue
        subset_sum = sum((amount for _, amount in subset), ZERO)
        if abs(subset_sum - target) <= tolerance:
            return subset

    return []
