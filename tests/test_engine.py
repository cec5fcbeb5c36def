"""Tests for the multi-pass matching engine."""

from datetime import date, timedelta

import pytest

from goal_recon.config import ReconConfig
from goal_recon.matching import MatchingEngine
from goal_recon.models import MatchType, TransactionType

D = date(2025, 1, 15)


@pytest.fixture
def engine() -> MatchingEngine:
    return MatchingEngine()


def test_exact_match_on_external_id(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(500000, external_id="TXN1", txn_date=D)]
    goal = [make_goal_txn("C1", 500000, external_id="TXN1", txn_date=D)]

    result = engine.match(bank, goal)

    assert len(result.matches) == 1
    match = result.matches[0]
    assert match.match_type is MatchType.EXACT
    assert match.confidence == 1.0
    assert match.bank_ids == ("B1",)
    assert match.goal_transaction_codes == ("C1",)
    assert match.posting_ids == ("C1-P1",)
    assert result.unmatched_bank == []
    assert result.unmatched_goal == []


def test_amount_match_confidence_decays_with_days(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(300000, txn_date=date(2025, 1, 1))]
    goal = [make_goal_txn("C1", 300500, txn_date=date(2025, 1, 10))]

    result = engine.match(bank, goal, date_window_days=30)

    (match,) = result.matches
    assert match.match_type is MatchType.AMOUNT
    assert match.confidence == pytest.approx(0.71)
    assert match.amount_variance == -500


def test_amount_match_takes_first_candidate_not_closest(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(100000, txn_date=D)]
    goal = [
        make_goal_txn("FAR", 100500, txn_date=D + timedelta(days=20)),
        make_goal_txn("NEAR", 100000, txn_date=D),
    ]

    result = engine.match(bank, goal)

    (match,) = result.matches
    assert match.goal_transaction_codes == ("FAR",)
    assert match.confidence == pytest.approx(0.6)
    assert result.unmatched_goal == ["NEAR"]


def test_amount_match_respects_window(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(100000, txn_date=D)]
    goal = [make_goal_txn("C1", 100000, txn_date=D + timedelta(days=31))]

    result = engine.match(bank, goal)

    assert result.matches == []
    assert result.unmatched_bank == ["B1"]
    assert result.unmatched_goal == ["C1"]


def test_split_bank_to_ledger(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(300000, txn_date=D) for _ in range(3)]
    goal = [make_goal_txn("C1", 900000, txn_date=D)]

    result = engine.match(bank, goal)

    (match,) = result.matches
    assert match.match_type is MatchType.SPLIT_BANK_TO_LEDGER
    assert match.confidence == 0.7
    assert sorted(match.bank_ids) == ["B1", "B2", "B3"]
    assert match.goal_transaction_codes == ("C1",)


def test_split_ledger_to_bank(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(500000, txn_date=D)]
    goal = [make_goal_txn("C1", 200000, txn_date=D), make_goal_txn("C2", 300000, txn_date=D)]

    result = engine.match(bank, goal)

    (match,) = result.matches
    assert match.match_type is MatchType.SPLIT_LEDGER_TO_BANK
    assert match.confidence == 0.7
    assert sorted(match.goal_transaction_codes) == ["C1", "C2"]
    assert sorted(match.posting_ids) == ["C1-P1", "C2-P1"]


def test_split_needs_same_day(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(300000, txn_date=D), make_bank(600000, txn_date=D + timedelta(days=1))]
    goal = [make_goal_txn("C1", 900000, txn_date=D)]

    result = engine.match(bank, goal)

    assert result.matches == []


def test_type_must_match(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(500000, external_id="TXN1")]
    goal = [make_goal_txn("C1", 500000, external_id="TXN1", txn_type=TransactionType.WITHDRAWAL)]

    result = engine.match(bank, goal)

    assert result.matches == []


def test_no_candidates(engine, make_bank) -> None:
    result = engine.match([make_bank(100000)], [])

    assert result.matches == []
    assert result.unmatched_bank == ["B1"]


def test_every_record_claimed_at_most_once(engine, make_bank, make_goal_txn) -> None:
    bank = [
        make_bank(500000, external_id="TXN1"),
        make_bank(500000, external_id="TXN1"),
        make_bank(250000),
        make_bank(250000),
        make_bank(100000, txn_date=D + timedelta(days=3)),
        make_bank(40000, txn_type=TransactionType.WITHDRAWAL),
    ]
    goal = [
        make_goal_txn("C1", 500000, external_id="TXN1"),
        make_goal_txn("C2", 500000),
        make_goal_txn("C3", 100000),
        make_goal_txn("C4", 20000, txn_type=TransactionType.WITHDRAWAL),
        make_goal_txn("C5", 20000, txn_type=TransactionType.WITHDRAWAL),
    ]

    result = engine.match(bank, goal)

    bank_ids = [i for m in result.matches for i in m.bank_ids]
    posting_ids = [i for m in result.matches for i in m.posting_ids]
    assert len(bank_ids) == len(set(bank_ids))
    assert len(posting_ids) == len(set(posting_ids))
    assert sorted(bank_ids + result.unmatched_bank) == sorted(t.id for t in bank)
    codes = [c for m in result.matches for c in m.goal_transaction_codes]
    assert sorted(codes + result.unmatched_goal) == ["C1", "C2", "C3", "C4", "C5"]


def test_same_input_gives_same_matches(engine, make_bank, make_goal_txn) -> None:
    bank = [make_bank(300000), make_bank(300000), make_bank(120000)]
    goal = [make_goal_txn("C1", 600000), make_goal_txn("C2", 120500)]

    first = engine.match(bank, goal)
    second = engine.match(bank, goal)

    assert first.matches == second.matches
    assert first.unmatched_bank == second.unmatched_bank
    assert first.unmatched_goal == second.unmatched_goal


def test_disabled_pass_is_skipped(make_bank, make_goal_txn) -> None:
    config = ReconConfig()
    for matching_pass in config.matching.passes:
        if matching_pass.name == "amount":
            matching_pass.enabled = False
    engine = MatchingEngine(config)

    result = engine.match([make_bank(300000)], [make_goal_txn("C1", 300500)])

    assert result.matches == []
