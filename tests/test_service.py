"""Tests for the service facade: drill-down, applying matches and batch runs."""

from datetime import date, datetime
import threading

import pytest

from goal_recon.models import MatchStatus, MatchType, TransactionType
from goal_recon.utils.dates import DateRange
from goal_recon.utils.exceptions import (
    ConflictError,
    NotFoundError,
    ProcessingError,
)


@pytest.fixture
def loaded(repo, make_bank, make_posting):
    repo.add_bank_transactions(
        [
            make_bank(500000, id="B1", external_id="TXN1"),
            make_bank(40000, id="B2", txn_type=TransactionType.WITHDRAWAL),
            make_bank(300000, id="B3", goal_id="G2", txn_date=date(2025, 1, 1)),
        ]
    )
    repo.add_postings(
        [
            make_posting(250000, fund="XUMMF", code="C1", external_id="TXN1"),
            make_posting(250000, fund="XUBF", code="C1", external_id="TXN1"),
            make_posting(
                300500, goal_id="G2", code="C2", txn_date=date(2025, 1, 10)
            ),
        ]
    )
    return repo


def test_goal_transactions_view(service, loaded, period) -> None:
    view = service.get_goal_transactions("G1", period)

    assert [t.id for t in view.bank_transactions] == ["B1", "B2"]
    assert [g.code for g in view.goal_transactions] == ["C1"]
    (match,) = view.matches
    assert match.match_type is MatchType.EXACT
    assert match.posting_ids == ("P1", "P2")
    assert view.unmatched_bank == ["B2"]
    assert view.unmatched_goal == []


def test_goal_transactions_type_filter(service, loaded, period) -> None:
    view = service.get_goal_transactions("G1", period, TransactionType.WITHDRAWAL)

    assert [t.id for t in view.bank_transactions] == ["B2"]
    assert view.goal_transactions == []
    assert view.matches == []


def test_goal_transactions_are_repeatable(service, loaded, period) -> None:
    first = service.get_goal_transactions("G2", period)
    second = service.get_goal_transactions("G2", period)

    assert first.matches == second.matches
    assert first.matches[0].match_type is MatchType.AMOUNT


def test_goal_transactions_unknown_goal(service, loaded, period) -> None:
    with pytest.raises(NotFoundError):
        service.get_goal_transactions("NOPE", period)


def test_apply_matches_marks_bank_transactions(service, loaded, period) -> None:
    view = service.get_goal_transactions("G1", period)

    updated = service.apply_matches(view.matches)

    assert updated == 1
    txn = loaded.get_bank_transaction("B1")
    assert txn.match_status is MatchStatus.MATCHED
    assert txn.matched_goal_transaction_code == "C1"
    assert txn.match_confidence == 1.0
    assert txn.matched_at is not None
    assert loaded.get_bank_transaction("B2").match_status is MatchStatus.UNMATCHED


def test_apply_matches_rejects_reversal_pair(service, repo, make_bank, make_goal_txn) -> None:
    repo.add_bank_transactions(
        [
            make_bank(100000, id="R1"),
            make_bank(100000, id="R2", txn_type=TransactionType.WITHDRAWAL),
        ]
    )
    stale = service.engine.match(
        repo.list_bank_transactions("G1"), [make_goal_txn("C1", 100000)]
    ).matches
    service.link_reversal("R1", "R2", "alice")

    with pytest.raises(ConflictError):
        service.apply_matches(stale)


def test_reversal_pair_is_not_offered_to_matching(
    service, repo, make_bank, make_posting, period
) -> None:
    repo.add_bank_transactions(
        [
            make_bank(100000, id="R1"),
            make_bank(100000, id="R2", txn_type=TransactionType.WITHDRAWAL),
        ]
    )
    repo.add_postings([make_posting(100000, code="C1")])
    service.link_reversal("R1", "R2", "alice")

    view = service.get_goal_transactions("G1", period)

    assert view.matches == []
    assert view.unmatched_goal == ["C1"]
    assert {t.id for t in view.bank_transactions} == {"R1", "R2"}


def test_run_batch_applies_matches(service, loaded, period) -> None:
    result = service.run_batch(period)

    assert result.processed == 2
    assert result.failed == 0
    assert result.matches_found == 2
    assert result.bank_updated == 2
    assert set(result.results) == {"G1", "G2"}
    assert loaded.get_bank_transaction("B1").match_status is MatchStatus.MATCHED
    assert loaded.get_bank_transaction("B3").matched_goal_transaction_code == "C2"


def test_run_batch_without_apply_writes_nothing(service, loaded, period) -> None:
    result = service.run_batch(period, apply=False)

    assert result.matches_found == 2
    assert result.bank_updated == 0
    assert loaded.get_bank_transaction("B1").match_status is MatchStatus.UNMATCHED


def test_run_batch_continues_past_failing_goal(
    service, loaded, make_posting, period, caplog
) -> None:
    loaded.add_postings(
        [
            make_posting(100, goal_id="G2", code="BAD", txn_date=date(2025, 1, 3)),
            make_posting(100, goal_id="G2", code="BAD", txn_date=date(2025, 1, 4)),
        ]
    )

    with caplog.at_level("ERROR", logger="goal_recon"):
        result = service.run_batch(period)

    assert result.processed == 1
    assert result.failed == 1
    assert "G2" in result.errors
    assert "mixes dates" in result.errors["G2"]
    assert "G2" in caplog.text
    assert loaded.get_bank_transaction("B1").match_status is MatchStatus.MATCHED


def test_run_batch_honours_cancellation(service, loaded, period) -> None:
    cancel = threading.Event()
    cancel.set()

    result = service.run_batch(period, cancel_event=cancel)

    assert result.cancelled == 2
    assert result.processed == 0
    assert result.total == 2
    assert loaded.get_bank_transaction("B1").match_status is MatchStatus.UNMATCHED


def test_run_batch_selected_goals(service, loaded, period) -> None:
    result = service.run_batch(period, goal_ids=["G2", "G2"])

    assert result.processed == 1
    assert set(result.results) == {"G2"}


def test_unexpected_summary_error_becomes_processing_error(
    service, loaded, period, monkeypatch
) -> None:
    def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(service.projector, "get_goal_summary", boom)

    with pytest.raises(ProcessingError, match="disk on fire"):
        service.get_goal_summary(period)


def test_goal_transactions_with_datetime_bounds(service, loaded) -> None:
    period = DateRange(datetime(2025, 1, 1, 9, 30), datetime(2025, 1, 31, 18, 0))

    view = service.get_goal_transactions("G2", period)

    assert [t.id for t in view.bank_transactions] == ["B3"]
    assert view.matches[0].match_type is MatchType.AMOUNT
