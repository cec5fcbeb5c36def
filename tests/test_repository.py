"""Tests for the in-memory repository."""

from datetime import date

import pytest

from goal_recon.models import MatchStatus
from goal_recon.utils.dates import DateRange
from goal_recon.utils.exceptions import NotFoundError, ValidationError


def test_reads_filter_by_goal_and_range_newest_first(repo, make_bank) -> None:
    repo.add_bank_transactions(
        [
            make_bank(1, id="OLD", txn_date=date(2025, 1, 2)),
            make_bank(1, id="NEW", txn_date=date(2025, 1, 20)),
            make_bank(1, id="OUT", txn_date=date(2025, 2, 1)),
            make_bank(1, id="OTHER", goal_id="G2"),
        ]
    )

    rows = repo.list_bank_transactions("G1", DateRange(date(2025, 1, 1), date(2025, 1, 31)))

    assert [t.id for t in rows] == ["NEW", "OLD"]


def test_excluded_sources_never_returned(repo, make_posting) -> None:
    repo.add_postings(
        [make_posting(1, code="C1"), make_posting(1, code="C1", source="Transfer_Reversal")]
    )

    assert len(repo.list_ledger_postings("G1")) == 1
    assert len(repo.list_postings_by_code("C1")) == 1


def test_unknown_goals_are_created_on_load(repo, make_bank) -> None:
    repo.add_bank_transactions([make_bank(1, goal_id="G9")])

    assert repo.get_goal("G9") is not None
    assert repo.get_goal("G1").client_name == "John Smith"


def test_duplicate_ids_rejected(repo, make_bank) -> None:
    repo.add_bank_transactions([make_bank(1, id="X")])

    with pytest.raises(ValidationError):
        repo.add_bank_transactions([make_bank(1, id="X")])


def test_update_checks_every_id_before_writing(repo, make_bank) -> None:
    repo.add_bank_transactions([make_bank(1, id="A")])

    with pytest.raises(NotFoundError):
        repo.update_bank_transactions(["A", "MISSING"], match_status=MatchStatus.MATCHED)

    assert repo.get_bank_transaction("A").match_status is MatchStatus.UNMATCHED


def test_only_writable_fields_can_change(repo, make_bank) -> None:
    repo.add_bank_transactions([make_bank(1, id="A")])

    with pytest.raises(ValidationError):
        repo.update_bank_transactions(["A"], total_amount=5)


def test_atomic_rolls_back_on_error(repo, make_bank, make_posting) -> None:
    repo.add_bank_transactions([make_bank(1, id="A")])
    repo.add_postings([make_posting(1, code="C1")])

    with pytest.raises(RuntimeError):
        with repo.atomic():
            repo.update_bank_transactions(["A"], review_notes="changed")
            repo.update_postings_by_codes(["C1"], review_notes="changed")
            raise RuntimeError("boom")

    assert repo.get_bank_transaction("A").review_notes is None
    assert repo.list_postings_by_code("C1")[0].review_notes is None


def test_posting_writes_skip_excluded_sources(repo, make_posting) -> None:
    repo.add_postings(
        [
            make_posting(1, code="C1", id="KEEP"),
            make_posting(1, code="C1", id="HIDDEN", source="Transfer_Reversal"),
        ]
    )

    updated = repo.update_postings_by_codes(["C1"], review_notes="checked")

    assert updated == 1
    notes = {p.id: p.review_notes for p in repo._postings.values()}
    assert notes == {"KEEP": "checked", "HIDDEN": None}
