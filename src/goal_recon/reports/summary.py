"""
Goal-level and fund-level rollups of bank versus ledger activity.

All classification is delegated to the shared ToleranceClassifier and the
review module so summaries never disagree with drill-downs.
"""

from decimal import Decimal
from typing import Iterable, Optional, Sequence, TypeVar
import logging

from ..config import PaginationConfig
from ..matching.aggregator import LedgerAggregator
from ..matching.tolerance import ToleranceClassifier
from ..models.summary import (
    FundSummary,
    GoalSummary,
    Page,
    ReviewStateFilter,
    ReviewStatus,
    StatusFilter,
    SummaryFilters,
    TransactionSide,
    VarianceItem,
    VarianceListing,
    VarianceStatus,
)
from ..models.transaction import (
    BankTransaction,
    Goal,
    GoalTransaction,
    ReviewTag,
    TransactionType,
)
from ..repository import Repository
from ..review.state import derive_review_status, find_unreconciled
from ..utils.dates import DateRange
from ..utils.exceptions import InvariantViolationError, ValidationError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
T = TypeVar("T")


def net_amount(transaction_type: TransactionType, amount: Decimal) -> Decimal:
    """Withdrawals count against the net whatever sign they were recorded with."""
    if transaction_type is TransactionType.WITHDRAWAL:
        return -abs(amount)
    return amount


def _contains(value: str, needle: Optional[str]) -> bool:
    return not needle or needle.lower() in (value or "").lower()


def _sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


class SummaryProjector:
    """Builds paginated goal, fund and variance views over a date range."""

    def __init__(
        self,
        repository: Repository,
        aggregator: LedgerAggregator,
        classifier: ToleranceClassifier,
        pagination: Optional[PaginationConfig] = None,
    ):
        self.repository = repository
        self.aggregator = aggregator
        self.classifier = classifier
        self.pagination = pagination or PaginationConfig()

    # Goal summary

    def get_goal_summary(
        self,
        date_range: DateRange,
        filters: Optional[SummaryFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[GoalSummary]:
        filters = filters or SummaryFilters()
        skipped: list[str] = []
        rows: list[GoalSummary] = []

        for goal, bank, goal_txns in self._goal_snapshots(date_range, filters, skipped):
            rows.append(self._goal_row(goal, bank, goal_txns))

        rows = [r for r in rows if self._status_matches(r.status, r.review_status, filters.status)]
        aggregates = {
            "bank_deposits": _sum(r.bank_deposits for r in rows),
            "ledger_deposits": _sum(r.ledger_deposits for r in rows),
            "deposit_variance": _sum(r.deposit_variance for r in rows),
            "bank_withdrawals": _sum(r.bank_withdrawals for r in rows),
            "ledger_withdrawals": _sum(r.ledger_withdrawals for r in rows),
            "withdrawal_variance": _sum(r.withdrawal_variance for r in rows),
        }
        return self._paginate(rows, page, page_size, aggregates, skipped)

    def _goal_row(
        self,
        goal: Goal,
        bank: Sequence[BankTransaction],
        goal_txns: Sequence[GoalTransaction],
    ) -> GoalSummary:
        def bank_total(kind: TransactionType) -> tuple[Decimal, int]:
            picked = [t.total_amount for t in bank if t.transaction_type is kind]
            return _sum(picked), len(picked)

        def ledger_total(kind: TransactionType) -> tuple[Decimal, int]:
            picked = [g.total_amount for g in goal_txns if g.transaction_type is kind]
            return _sum(picked), len(picked)

        bank_dep, bank_dep_count = bank_total(TransactionType.DEPOSIT)
        ledger_dep, ledger_dep_count = ledger_total(TransactionType.DEPOSIT)
        bank_wd, bank_wd_count = bank_total(TransactionType.WITHDRAWAL)
        ledger_wd, ledger_wd_count = ledger_total(TransactionType.WITHDRAWAL)

        deposit = self.classifier.classify(bank_dep, ledger_dep)
        withdrawal = self.classifier.classify(bank_wd, ledger_wd)
        has_variance = deposit.exceeds_tolerance or withdrawal.exceeds_tolerance

        unreconciled = find_unreconciled(bank, goal_txns)

        return GoalSummary(
            goal_id=goal.goal_id,
            client_name=goal.client_name,
            account_number=goal.account_number,
            bank_deposits=bank_dep,
            ledger_deposits=ledger_dep,
            deposit_variance=deposit.difference,
            deposit_bank_count=bank_dep_count,
            deposit_ledger_count=ledger_dep_count,
            bank_withdrawals=bank_wd,
            ledger_withdrawals=ledger_wd,
            withdrawal_variance=withdrawal.difference,
            withdrawal_bank_count=bank_wd_count,
            withdrawal_ledger_count=ledger_wd_count,
            status=VarianceStatus.VARIANCE if has_variance else VarianceStatus.MATCHED,
            has_variance=has_variance,
            review_status=self._review_status(has_variance, unreconciled),
            unreviewed_count=unreconciled.unreviewed_count,
            reviewed_count=unreconciled.reviewed_count,
        )

    # Fund summary

    def get_fund_summary(
        self,
        date_range: DateRange,
        filters: Optional[SummaryFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[FundSummary]:
        filters = filters or SummaryFilters()
        skipped: list[str] = []
        fund_codes = self.aggregator.fund_codes
        rows: list[FundSummary] = []

        for goal, bank, goal_txns in self._goal_snapshots(date_range, filters, skipped):
            bank_funds = {
                code: _sum(
                    net_amount(t.transaction_type, t.fund_amounts.get(code, ZERO)) for t in bank
                )
                for code in fund_codes
            }
            ledger_funds = {
                code: _sum(
                    net_amount(g.transaction_type, g.fund_amounts.get(code, ZERO))
                    for g in goal_txns
                )
                for code in fund_codes
            }
            bank_total = _sum(net_amount(t.transaction_type, t.total_amount) for t in bank)
            ledger_total = _sum(net_amount(g.transaction_type, g.total_amount) for g in goal_txns)

            variance = self.classifier.classify_vector(
                bank_total, ledger_total, bank_funds, ledger_funds
            )
            has_variance = variance.exceeds_tolerance
            unreconciled = find_unreconciled(bank, goal_txns)

            rows.append(
                FundSummary(
                    goal_id=goal.goal_id,
                    client_name=goal.client_name,
                    account_number=goal.account_number,
                    bank_funds=bank_funds,
                    bank_total=bank_total,
                    ledger_funds=ledger_funds,
                    ledger_total=ledger_total,
                    fund_variances={code: v.difference for code, v in variance.funds.items()},
                    total_variance=variance.total.difference,
                    status=VarianceStatus.VARIANCE if has_variance else VarianceStatus.MATCHED,
                    review_status=self._review_status(has_variance, unreconciled),
                )
            )

        rows = [r for r in rows if self._status_matches(r.status, r.review_status, filters.status)]
        aggregates = {"bank_total": _sum(r.bank_total for r in rows)}
        aggregates["ledger_total"] = _sum(r.ledger_total for r in rows)
        for code in fund_codes:
            aggregates[f"bank_{code}"] = _sum(r.bank_funds[code] for r in rows)
            aggregates[f"ledger_{code}"] = _sum(r.ledger_funds[code] for r in rows)
        return self._paginate(rows, page, page_size, aggregates, skipped)

    # Variance listing

    def get_variance_transactions(
        self,
        date_range: DateRange,
        filters: Optional[SummaryFilters] = None,
        review_state: ReviewStateFilter = ReviewStateFilter.ALL,
        review_tag: Optional[ReviewTag] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> VarianceListing:
        filters = filters or SummaryFilters()
        skipped: list[str] = []
        items: list[VarianceItem] = []

        for goal, bank, goal_txns in self._goal_snapshots(date_range, filters, skipped):
            unreconciled = find_unreconciled(bank, goal_txns)
            for t in unreconciled.bank:
                items.append(self._variance_item(TransactionSide.BANK, t.id, goal, t, t.total_amount))
            for g in unreconciled.goal:
                items.append(self._variance_item(TransactionSide.GOAL, g.code, goal, g, g.total_amount))

        if review_state is ReviewStateFilter.PENDING:
            items = [i for i in items if i.review_tag is None]
        elif review_state is ReviewStateFilter.REVIEWED:
            items = [i for i in items if i.review_tag is not None]
        if review_tag is not None:
            items = [i for i in items if i.review_tag is review_tag]

        items.sort(key=lambda i: i.goal_id)
        items.sort(key=lambda i: i.transaction_date, reverse=True)

        by_tag: dict[str, int] = {}
        for item in items:
            if item.review_tag is not None:
                by_tag[item.review_tag.value] = by_tag.get(item.review_tag.value, 0) + 1
        pending = sum(1 for i in items if i.review_tag is None)
        listing_page = self._paginate(
            items,
            page,
            page_size,
            {"amount": _sum(i.amount for i in items)},
            skipped,
        )
        return VarianceListing(
            page=listing_page,
            total_unmatched=len(items),
            pending_review=pending,
            reviewed=len(items) - pending,
            by_tag=by_tag,
        )

    @staticmethod
    def _variance_item(
        side: TransactionSide, item_id: str, goal: Goal, record, amount: Decimal
    ) -> VarianceItem:
        return VarianceItem(
            source=side,
            id=item_id,
            goal_id=goal.goal_id,
            client_name=goal.client_name,
            account_number=goal.account_number,
            transaction_date=record.transaction_date,
            transaction_type=record.transaction_type,
            amount=amount,
            external_transaction_id=record.external_transaction_id,
            review_tag=record.review_tag,
            review_notes=record.review_notes,
            reviewed_by=record.reviewed_by,
            reviewed_at=record.reviewed_at,
            variance_resolved=record.variance_resolved,
        )

    # Helpers

    def _goal_snapshots(
        self, date_range: DateRange, filters: SummaryFilters, skipped: list[str]
    ):
        """
        Yield (goal, bank, goal_txns) for filtered goals with activity in range.

        A goal whose postings cannot be aggregated is logged, appended to
        ``skipped`` and left out; the other goals are still reported.
        """
        for goal in self.repository.list_goals():
            if not (
                _contains(goal.goal_id, filters.goal_id)
                and _contains(goal.account_number, filters.account_number)
                and _contains(goal.client_name, filters.client_search)
            ):
                continue
            bank = self.repository.list_bank_transactions(goal.goal_id, date_range)
            try:
                goal_txns = self.aggregator.aggregate(
                    self.repository.list_ledger_postings(goal.goal_id, date_range)
                )
            except InvariantViolationError as e:
                logger.error(f"Goal {goal.goal_id} left out of summary: {e}")
                skipped.append(goal.goal_id)
                continue
            if not bank and not goal_txns:
                continue
            yield goal, bank, goal_txns

    @staticmethod
    def _review_status(has_variance: bool, unreconciled) -> ReviewStatus:
        if not has_variance:
            return ReviewStatus.NOT_APPLICABLE
        return derive_review_status(unreconciled.reviewed_count, unreconciled.unreviewed_count)

    @staticmethod
    def _status_matches(
        status: VarianceStatus, review_status: ReviewStatus, wanted: StatusFilter
    ) -> bool:
        if wanted is StatusFilter.ALL:
            return True
        if wanted is StatusFilter.REVIEWED:
            return status is VarianceStatus.VARIANCE and review_status is ReviewStatus.REVIEWED
        return status.value == wanted.value

    def _paginate(
        self,
        rows: list[T],
        page: int,
        page_size: Optional[int],
        aggregates: dict[str, Decimal],
        skipped_goals: Optional[list[str]] = None,
    ) -> Page[T]:
        if page < 1:
            raise ValidationError(f"Page must be 1 or greater, got {page}")
        size = page_size or self.pagination.default_page_size
        if size < 1:
            raise ValidationError(f"Page size must be positive, got {size}")
        size = min(size, self.pagination.max_page_size)
        start = (page - 1) * size
        return Page(
            items=rows[start : start + size],
            total=len(rows),
            page=page,
            page_size=size,
            aggregates=aggregates,
            skipped_goals=list(skipped_goals or []),
        )
