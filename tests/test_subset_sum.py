"""Tests for the bounded subset-sum search."""

from decimal import Decimal

from goal_recon.matching import MAX_EXHAUSTIVE_CANDIDATES, find_combination_sum


def _items(*amounts):
    return [(f"i{n}", Decimal(str(a))) for n, a in enumerate(amounts, start=1)]


def test_greedy_finds_equal_parts() -> None:
    result = find_combination_sum(_items(300000, 300000, 300000), Decimal("900000"), Decimal("9000"))

    assert [item_id for item_id, _ in result] == ["i1", "i2", "i3"]


def test_exhaustive_search_when_greedy_overshoots() -> None:
    """Greedy takes 600 and gets stuck; the bitmask search finds 500 + 400."""
    result = find_combination_sum(_items(600, 500, 400), Decimal("900"), Decimal("0"))

    assert sorted(amount for _, amount in result) == [Decimal("400"), Decimal("500")]


def test_single_item_is_never_a_split() -> None:
    assert find_combination_sum(_items(900), Decimal("900"), Decimal("0")) == []
    assert find_combination_sum(_items(900, 5000), Decimal("900"), Decimal("0")) == []


def test_no_candidates() -> None:
    assert find_combination_sum([], Decimal("900"), Decimal("10")) == []


def test_search_is_bounded_to_largest_candidates() -> None:
    """A split made only of items outside the largest ten is missed."""
    items = _items(*([1000] * MAX_EXHAUSTIVE_CANDIDATES), 3, 2, 2)

    assert find_combination_sum(items, Decimal("4"), Decimal("0")) == []

    widened = find_combination_sum(items, Decimal("4"), Decimal("0"), limit=len(items))
    assert [amount for _, amount in widened] == [Decimal("2"), Decimal("2")]
