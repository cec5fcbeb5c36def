"""Tests for goal, fund and variance summaries."""

from datetime import date
from decimal import Decimal

import pytest

from goal_recon.models import (
    ReviewStateFilter,
    ReviewStatus,
    ReviewTag,
    StatusFilter,
    SummaryFilters,
    TransactionSide,
    TransactionType,
    VarianceStatus,
)
from goal_recon.utils.exceptions import ValidationError


@pytest.fixture
def loaded(repo, make_bank, make_posting):
    """
    G1 reconciles on totals but not per fund; G2 has a bank deposit the
    ledger never saw; G3 only has activity outside the period.
    """
    repo.add_bank_transactions(
        [
            make_bank(
                500000,
                id="B1",
                external_id="TXN1",
                fund_amounts={"XUMMF": Decimal("500000")},
            ),
            make_bank(
                200000,
                id="B2",
                goal_id="G2",
                external_id="TXN9",
                txn_date=date(2025, 1, 20),
            ),
            make_bank(75000, id="B3", goal_id="G3", txn_date=date(2024, 12, 1)),
        ]
    )
    repo.add_postings(
        [
            make_posting(300000, fund="XUMMF", code="C1", external_id="TXN1"),
            make_posting(200000, fund="XUBF", code="C1", external_id="TXN1"),
        ]
    )
    return repo


def test_goal_summary_rows(service, loaded, period) -> None:
    page = service.get_goal_summary(period)

    assert page.total == 2
    g1, g2 = page.items
    assert g1.goal_id == "G1"
    assert g1.client_name == "John Smith"
    assert g1.bank_deposits == Decimal("500000")
    assert g1.ledger_deposits == Decimal("500000")
    assert g1.deposit_bank_count == 1
    assert g1.deposit_ledger_count == 1
    assert g1.status is VarianceStatus.MATCHED
    assert g1.review_status is ReviewStatus.NOT_APPLICABLE

    assert g2.goal_id == "G2"
    assert g2.deposit_variance == Decimal("200000")
    assert g2.has_variance is True
    assert g2.status is VarianceStatus.VARIANCE
    assert g2.review_status is ReviewStatus.UNREVIEWED
    assert g2.unreviewed_count == 1


def test_goal_summary_aggregates_cover_all_pages(service, loaded, period) -> None:
    page = service.get_goal_summary(period, page=2, page_size=1)

    assert [s.goal_id for s in page.items] == ["G2"]
    assert page.total == 2
    assert page.total_pages == 2
    assert page.aggregates["bank_deposits"] == Decimal("700000")
    assert page.aggregates["ledger_deposits"] == Decimal("500000")
    assert page.aggregates["deposit_variance"] == Decimal("200000")


def test_page_size_is_capped(service, loaded, period) -> None:
    page = service.get_goal_summary(period, page_size=10_000)

    assert page.page_size == 500


def test_bad_page_rejected(service, loaded, period) -> None:
    with pytest.raises(ValidationError):
        service.get_goal_summary(period, page=0)


@pytest.mark.parametrize(
    "filters, expected",
    [
        (SummaryFilters(status=StatusFilter.VARIANCE), ["G2"]),
        (SummaryFilters(status=StatusFilter.MATCHED), ["G1"]),
        (SummaryFilters(status=StatusFilter.REVIEWED), []),
        (SummaryFilters(client_search="jane"), ["G2"]),
        (SummaryFilters(account_number="acc1"), ["G1"]),
        (SummaryFilters(goal_id="g"), ["G1", "G2"]),
    ],
)
def test_goal_summary_filters(service, loaded, period, filters, expected) -> None:
    page = service.get_goal_summary(period, filters)

    assert [s.goal_id for s in page.items] == expected


def test_reviewed_filter_after_tagging(service, loaded, period) -> None:
    service.review_bank_transaction("B2", ReviewTag.MISSING_IN_LEDGER, "alice")

    page = service.get_goal_summary(period, SummaryFilters(status=StatusFilter.REVIEWED))

    assert [s.goal_id for s in page.items] == ["G2"]
    assert page.items[0].review_status is ReviewStatus.REVIEWED


def test_fund_summary_flags_fund_level_variance(service, loaded, period) -> None:
    page = service.get_fund_summary(period, SummaryFilters(goal_id="G1"))

    (row,) = page.items
    assert row.bank_total == row.ledger_total == Decimal("500000")
    assert row.total_variance == Decimal("0")
    assert row.fund_variances["XUMMF"] == Decimal("200000")
    assert row.fund_variances["XUBF"] == Decimal("-200000")
    assert row.status is VarianceStatus.VARIANCE
    # Both sides share TXN1, so nothing is left to review
    assert row.review_status is ReviewStatus.NOT_APPLICABLE


def test_fund_summary_nets_withdrawals(service, repo, make_bank, make_posting, period) -> None:
    repo.add_bank_transactions(
        [
            make_bank(300000, fund_amounts={"XUMMF": Decimal("300000")}),
            make_bank(
                100000,
                txn_type=TransactionType.WITHDRAWAL,
                fund_amounts={"XUMMF": Decimal("100000")},
            ),
        ]
    )
    repo.add_postings(
        [
            make_posting(300000, code="DEP"),
            make_posting(-100000, code="WD", txn_type=TransactionType.WITHDRAWAL),
        ]
    )

    (row,) = service.get_fund_summary(period).items

    assert row.bank_funds["XUMMF"] == Decimal("200000")
    assert row.ledger_funds["XUMMF"] == Decimal("200000")
    assert row.bank_total == Decimal("200000")
    assert row.status is VarianceStatus.MATCHED
    assert row.review_status is ReviewStatus.NOT_APPLICABLE


def test_variance_listing(service, loaded, repo, make_posting, period) -> None:
    repo.add_postings([make_posting(50000, code="C5", txn_date=date(2025, 1, 25))])

    listing = service.get_variance_transactions(period)

    assert listing.total_unmatched == 2
    assert listing.pending_review == 2
    first, second = listing.page.items
    assert (first.source, first.id, first.transaction_date) == (
        TransactionSide.GOAL,
        "C5",
        date(2025, 1, 25),
    )
    assert (second.source, second.id, second.client_name) == (
        TransactionSide.BANK,
        "B2",
        "Jane Doe",
    )


def test_variance_listing_review_filters(service, loaded, period) -> None:
    service.review_bank_transaction("B2", ReviewTag.TIMING_DIFFERENCE, "alice")

    pending = service.get_variance_transactions(
        period, review_state=ReviewStateFilter.PENDING
    )
    reviewed = service.get_variance_transactions(
        period, review_state=ReviewStateFilter.REVIEWED
    )
    by_tag = service.get_variance_transactions(period, review_tag=ReviewTag.OTHER)

    assert pending.total_unmatched == 0
    assert [i.id for i in reviewed.page.items] == ["B2"]
    assert reviewed.by_tag == {"TIMING_DIFFERENCE": 1}
    assert reviewed.reviewed == 1
    assert by_tag.total_unmatched == 0


def test_inconsistent_goal_is_left_out_of_summaries(
    service, repo, make_bank, make_posting, period, caplog
) -> None:
    # Same derived code for a deposit and a withdrawal on one day
    repo.add_postings(
        [
            make_posting(100000),
            make_posting(-40000, txn_type=TransactionType.WITHDRAWAL),
        ]
    )
    repo.add_bank_transactions([make_bank(200000, id="B9", goal_id="G2")])

    with caplog.at_level("ERROR", logger="goal_recon"):
        goals = service.get_goal_summary(period)
        funds = service.get_fund_summary(period)
        listing = service.get_variance_transactions(period)

    assert [s.goal_id for s in goals.items] == ["G2"]
    assert goals.skipped_goals == ["G1"]
    assert [s.goal_id for s in funds.items] == ["G2"]
    assert funds.skipped_goals == ["G1"]
    assert [i.id for i in listing.page.items] == ["B9"]
    assert listing.page.skipped_goals == ["G1"]
    assert "Goal G1 left out of summary" in caplog.text
