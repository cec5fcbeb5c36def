"""
Automatic resolution of reviewed variances.

A variance tagged MISSING_IN_LEDGER, MISSING_IN_BANK or TIMING_DIFFERENCE
explains a gap that a later upload may close. Re-checking those items
against the current data marks them resolved without clearing the
original review tag.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence
import logging

from ..matching.aggregator import LedgerAggregator
from ..matching.tolerance import ToleranceClassifier
from ..models.summary import (
    ResolutionDetail,
    ResolutionResult,
    ResolutionStats,
    ResolvedVariance,
    ResolvedVariancesReport,
    SummaryFilters,
    TagResolutionStats,
    TransactionSide,
)
from ..models.transaction import BankTransaction, Goal, GoalTransaction, ReviewTag
from ..repository import Repository
from ..utils.dates import DateRange, days_between, within
from ..utils.exceptions import InvariantViolationError

logger = logging.getLogger(__name__)

BANK_RESOLVABLE_TAGS = (ReviewTag.MISSING_IN_LEDGER, ReviewTag.TIMING_DIFFERENCE)
GOAL_RESOLVABLE_TAGS = (ReviewTag.MISSING_IN_BANK, ReviewTag.TIMING_DIFFERENCE)
RESOLVABLE_TAGS = (
    ReviewTag.MISSING_IN_LEDGER,
    ReviewTag.MISSING_IN_BANK,
    ReviewTag.TIMING_DIFFERENCE,
)


def _matches_filters(goal: Goal, filters: SummaryFilters) -> bool:
    def contains(value: str, needle: Optional[str]) -> bool:
        return not needle or needle.lower() in (value or "").lower()

    return (
        contains(goal.goal_id, filters.goal_id)
        and contains(goal.account_number, filters.account_number)
        and contains(goal.client_name, filters.client_search)
    )


class VarianceResolver:
    """Re-checks tagged variances and marks the ones a counterpart now explains."""

    def __init__(
        self,
        repository: Repository,
        aggregator: LedgerAggregator,
        classifier: ToleranceClassifier,
        date_window_days: int = 30,
        timing_tolerance_days: int = 3,
    ):
        self.repository = repository
        self.aggregator = aggregator
        self.classifier = classifier
        self.date_window_days = date_window_days
        self.timing_tolerance_days = timing_tolerance_days

    def detect_resolved_variances(
        self,
        date_range: Optional[DateRange] = None,
        goal_ids: Optional[Iterable[str]] = None,
    ) -> ResolutionResult:
        """
        Mark tagged variances resolved where a counterpart now exists.

        Only unresolved items dated inside ``date_range`` are checked.
        Counterparts are searched across every date of the same goal.

        Args:
            date_range: Transaction dates to re-check (all dates when omitted)
            goal_ids: Restrict the run to these goals

        Returns:
            ResolutionResult with the count, per-tag counts and one detail per item
        """
        wanted = set(goal_ids) if goal_ids is not None else None
        details: list[ResolutionDetail] = []

        for goal in self.repository.list_goals():
            if wanted is not None and goal.goal_id not in wanted:
                continue
            snapshot = self._snapshot(goal.goal_id)
            if snapshot is None:
                continue
            bank, goal_txns = snapshot
            details.extend(self._resolve_bank(bank, goal_txns, date_range))
            details.extend(self._resolve_goal(goal_txns, bank, date_range))

        if details:
            resolved_at = datetime.now()
            with self.repository.atomic():
                for detail in details:
                    fields = {
                        "variance_resolved": True,
                        "resolved_at": resolved_at,
                        "resolved_reason": detail.resolved_reason,
                    }
                    if detail.source is TransactionSide.BANK:
                        self.repository.update_bank_transactions([detail.id], **fields)
                    else:
                        self.repository.update_postings_by_codes([detail.id], **fields)

        by_tag: dict[str, int] = {}
        for detail in details:
            key = detail.original_tag.value
            by_tag[key] = by_tag.get(key, 0) + 1

        logger.info(f"Resolved {len(details)} reviewed variances {by_tag}")
        return ResolutionResult(resolved=len(details), by_tag=by_tag, details=details)

    def get_resolved_variances_report(
        self,
        date_range: Optional[DateRange] = None,
        filters: Optional[SummaryFilters] = None,
        original_tag: Optional[ReviewTag] = None,
    ) -> ResolvedVariancesReport:
        """List resolved variances, most recently resolved first."""
        filters = filters or SummaryFilters()
        items: list[ResolvedVariance] = []

        for goal in self.repository.list_goals():
            if not _matches_filters(goal, filters):
                continue
            snapshot = self._snapshot(goal.goal_id, date_range)
            if snapshot is None:
                continue
            bank, goal_txns = snapshot
            for txn in bank:
                if txn.variance_resolved and self._tag_matches(txn.review_tag, original_tag):
                    items.append(
                        self._resolved_item(
                            TransactionSide.BANK, txn.id, goal, txn, txn.total_amount
                        )
                    )
            for goal_txn in goal_txns:
                if goal_txn.variance_resolved and self._tag_matches(
                    goal_txn.review_tag, original_tag
                ):
                    items.append(
                        self._resolved_item(
                            TransactionSide.GOAL,
                            goal_txn.code,
                            goal,
                            goal_txn,
                            goal_txn.total_amount,
                        )
                    )

        items.sort(key=lambda i: i.goal_id)
        items.sort(key=lambda i: i.resolved_at or datetime.min, reverse=True)

        by_tag: dict[str, int] = {}
        by_source = {TransactionSide.BANK.value: 0, TransactionSide.GOAL.value: 0}
        for item in items:
            if item.original_tag is not None:
                key = item.original_tag.value
                by_tag[key] = by_tag.get(key, 0) + 1
            by_source[item.source.value] += 1

        return ResolvedVariancesReport(
            items=items, total_resolved=len(items), by_tag=by_tag, by_source=by_source
        )

    def get_resolution_stats(self) -> ResolutionStats:
        """Resolved versus pending counts for every auto-resolvable tag."""
        stats = ResolutionStats(
            by_tag={tag.value: TagResolutionStats() for tag in RESOLVABLE_TAGS}
        )

        for goal in self.repository.list_goals():
            snapshot = self._snapshot(goal.goal_id)
            if snapshot is None:
                continue
            bank, goal_txns = snapshot
            tagged = [t for t in bank if t.review_tag in BANK_RESOLVABLE_TAGS]
            tagged.extend(g for g in goal_txns if g.review_tag in GOAL_RESOLVABLE_TAGS)
            for item in tagged:
                entry = stats.by_tag[item.review_tag.value]
                entry.total += 1
                if item.variance_resolved:
                    entry.resolved += 1

        return stats

    # Counterpart search

    def _resolve_bank(
        self,
        bank: Sequence[BankTransaction],
        goal_txns: Sequence[GoalTransaction],
        date_range: Optional[DateRange],
    ) -> list[ResolutionDetail]:
        details = []
        for txn in bank:
            if (
                txn.review_tag not in BANK_RESOLVABLE_TAGS
                or txn.variance_resolved
                or txn.is_reversal_linked
                or not within(txn.transaction_date, date_range)
            ):
                continue
            timing = txn.review_tag is ReviewTag.TIMING_DIFFERENCE
            if timing:
                counterpart = self._timing_counterpart(txn, txn.total_amount, goal_txns)
            else:
                counterpart = self._counterpart(txn, txn.total_amount, goal_txns)
            if counterpart is None:
                continue
            if timing:
                reason = (
                    f"Date now within tolerance. Bank: {txn.transaction_date}, "
                    f"Goal: {counterpart.transaction_date}"
                )
            else:
                reason = f"Matching goal transaction found: {counterpart.code}"
            details.append(
                ResolutionDetail(
                    source=TransactionSide.BANK,
                    id=txn.id,
                    goal_id=txn.goal_id,
                    external_transaction_id=txn.external_transaction_id,
                    amount=txn.total_amount,
                    original_tag=txn.review_tag,
                    resolved_reason=reason,
                )
            )
        return details

    def _resolve_goal(
        self,
        goal_txns: Sequence[GoalTransaction],
        bank: Sequence[BankTransaction],
        date_range: Optional[DateRange],
    ) -> list[ResolutionDetail]:
        candidates = [t for t in bank if not t.is_reversal_linked]
        details = []
        for goal_txn in goal_txns:
            if (
                goal_txn.review_tag not in GOAL_RESOLVABLE_TAGS
                or goal_txn.variance_resolved
                or not within(goal_txn.transaction_date, date_range)
            ):
                continue
            timing = goal_txn.review_tag is ReviewTag.TIMING_DIFFERENCE
            if timing:
                counterpart = self._timing_counterpart(goal_txn, goal_txn.total_amount, candidates)
            else:
                counterpart = self._counterpart(goal_txn, goal_txn.total_amount, candidates)
            if counterpart is None:
                continue
            if timing:
                reason = (
                    f"Date now within tolerance. Goal: {goal_txn.transaction_date}, "
                    f"Bank: {counterpart.transaction_date}"
                )
            else:
                reason = (
                    "Matching bank transaction found: "
                    f"{counterpart.external_transaction_id or counterpart.id}"
                )
            details.append(
                ResolutionDetail(
                    source=TransactionSide.GOAL,
                    id=goal_txn.code,
                    goal_id=goal_txn.goal_id,
                    external_transaction_id=goal_txn.external_transaction_id,
                    amount=goal_txn.total_amount,
                    original_tag=goal_txn.review_tag,
                    resolved_reason=reason,
                )
            )
        return details

    def _counterpart(self, item, amount, candidates):
        """Same external id first, then the first same-type item inside the date window."""
        same_type = [
            c
            for c in candidates
            if c.transaction_type is item.transaction_type
            and self.classifier.within(c.total_amount, amount)
        ]
        if item.external_transaction_id is not None:
            for candidate in same_type:
                if candidate.external_transaction_id == item.external_transaction_id:
                    return candidate
        for candidate in same_type:
            if (
                days_between(candidate.transaction_date, item.transaction_date)
                <= self.date_window_days
            ):
                return candidate
        return None

    def _timing_counterpart(self, item, amount, candidates):
        if item.external_transaction_id is None:
            return None
        for candidate in candidates:
            if (
                candidate.external_transaction_id == item.external_transaction_id
                and candidate.transaction_type is item.transaction_type
                and days_between(candidate.transaction_date, item.transaction_date)
                <= self.timing_tolerance_days
                and self.classifier.within(candidate.total_amount, amount)
            ):
                return candidate
        return None

    # Helpers

    def _snapshot(self, goal_id: str, date_range: Optional[DateRange] = None):
        bank = self.repository.list_bank_transactions(goal_id, date_range)
        try:
            goal_txns = self.aggregator.aggregate(
                self.repository.list_ledger_postings(goal_id, date_range)
            )
        except InvariantViolationError as e:
            logger.error(f"Goal {goal_id} skipped during variance resolution: {e}")
            return None
        return bank, goal_txns

    @staticmethod
    def _tag_matches(tag: Optional[ReviewTag], wanted: Optional[ReviewTag]) -> bool:
        return tag in RESOLVABLE_TAGS and (wanted is None or tag is wanted)

    @staticmethod
    def _resolved_item(
        side: TransactionSide, item_id: str, goal: Goal, record, amount
    ) -> ResolvedVariance:
        return ResolvedVariance(
            source=side,
            id=item_id,
            goal_id=goal.goal_id,
            client_name=goal.client_name,
            account_number=goal.account_number,
            transaction_date=record.transaction_date,
            transaction_type=record.transaction_type,
            amount=amount,
            external_transaction_id=record.external_transaction_id,
            original_tag=record.review_tag,
            review_notes=record.review_notes,
            resolved_at=record.resolved_at,
            resolved_reason=record.resolved_reason,
        )
