"""
Variance review workflow.

Review progress is computed from the simple notion of "unmatched": a bank
transaction with no goal transaction sharing its external id and type, and
vice versa. It does not depend on whether the matching engine has run.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence, Union
import logging

from ..matching.aggregator import LedgerAggregator
from ..models.summary import BulkReviewResult, ReviewStatus, ReviewStatusReport
from ..models.transaction import BankTransaction, GoalTransaction, ReviewTag
from ..repository import Repository
from ..utils.dates import DateRange
from ..utils.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

TagLike = Union[ReviewTag, str]


@dataclass(frozen=True)
class Unreconciled:
    """Bank and goal transactions without a same-id, same-type counterpart."""

    bank: list[BankTransaction]
    goal: list[GoalTransaction]

    @property
    def reviewed_count(self) -> int:
        return sum(1 for t in self.bank if t.review_tag is not None) + sum(
            1 for g in self.goal if g.review_tag is not None
        )

    @property
    def total(self) -> int:
        return len(self.bank) + len(self.goal)

    @property
    def unreviewed_count(self) -> int:
        return self.total - self.reviewed_count

    def by_tag(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for item in [*self.bank, *self.goal]:
            if item.review_tag is not None:
                key = item.review_tag.value
                counts[key] = counts.get(key, 0) + 1
        return counts


def find_unreconciled(
    bank_transactions: Sequence[BankTransaction],
    goal_transactions: Sequence[GoalTransaction],
) -> Unreconciled:
    """Split out items with no counterpart on the same external id and type."""
    goal_keys = {
        (g.external_transaction_id, g.transaction_type)
        for g in goal_transactions
        if g.external_transaction_id is not None
    }
    bank_keys = {
        (t.external_transaction_id, t.transaction_type)
        for t in bank_transactions
        if t.external_transaction_id is not None
    }
    return Unreconciled(
        bank=[
            t
            for t in bank_transactions
            if (t.external_transaction_id, t.transaction_type) not in goal_keys
        ],
        goal=[
            g
            for g in goal_transactions
            if (g.external_transaction_id, g.transaction_type) not in bank_keys
        ],
    )


def derive_review_status(reviewed_count: int, unreviewed_count: int) -> ReviewStatus:
    if reviewed_count + unreviewed_count == 0:
        return ReviewStatus.NOT_APPLICABLE
    if reviewed_count == 0:
        return ReviewStatus.UNREVIEWED
    if unreviewed_count == 0:
        return ReviewStatus.REVIEWED
    return ReviewStatus.PARTIALLY_REVIEWED


def parse_review_tag(tag: TagLike) -> ReviewTag:
    if isinstance(tag, ReviewTag):
        return tag
    try:
        return ReviewTag(str(tag).strip().upper())
    except ValueError as e:
        raise ValidationError(f"Unknown review tag: {tag!r}") from e


class VarianceReviewWorkflow:
    """Tags unmatched bank and goal transactions and reports review progress."""

    def __init__(self, repository: Repository, aggregator: LedgerAggregator):
        self.repository = repository
        self.aggregator = aggregator

    def goal_unreconciled(self, goal_id: str, date_range: DateRange) -> Unreconciled:
        bank = self.repository.list_bank_transactions(goal_id, date_range)
        goal_txns = self.aggregator.aggregate(
            self.repository.list_ledger_postings(goal_id, date_range)
        )
        return find_unreconciled(bank, goal_txns)

    def get_goal_review_status(self, goal_id: str, date_range: DateRange) -> ReviewStatusReport:
        if self.repository.get_goal(goal_id) is None:
            raise NotFoundError(f"Goal not found: {goal_id}")

        unreconciled = self.goal_unreconciled(goal_id, date_range)
        return ReviewStatusReport(
            goal_id=goal_id,
            status=derive_review_status(
                unreconciled.reviewed_count, unreconciled.unreviewed_count
            ),
            total_unmatched=unreconciled.total,
            reviewed_count=unreconciled.reviewed_count,
            pending_count=unreconciled.unreviewed_count,
            by_tag=unreconciled.by_tag(),
        )

    def review_bank_transaction(
        self,
        transaction_id: str,
        review_tag: TagLike,
        reviewed_by: str,
        review_notes: Optional[str] = None,
    ) -> BankTransaction:
        tag = self._validate(review_tag, reviewed_by)
        self._check_bank_reviewable(transaction_id)

        self.repository.update_bank_transactions(
            [transaction_id], **self._review_fields(tag, reviewed_by, review_notes)
        )
        logger.info(f"Bank transaction {transaction_id} tagged {tag.value} by {reviewed_by}")
        return self.repository.get_bank_transaction(transaction_id)

    def review_goal_transaction(
        self,
        goal_transaction_code: str,
        review_tag: TagLike,
        reviewed_by: str,
        review_notes: Optional[str] = None,
    ) -> int:
        """Tag every posting under one goal transaction code; returns postings updated."""
        tag = self._validate(review_tag, reviewed_by)
        self._check_goal_reviewable(goal_transaction_code)

        updated = self.repository.update_postings_by_codes(
            [goal_transaction_code], **self._review_fields(tag, reviewed_by, review_notes)
        )
        logger.info(
            f"Goal transaction {goal_transaction_code} tagged {tag.value} by {reviewed_by} "
            f"({updated} postings)"
        )
        return updated

    def bulk_review(
        self,
        bank_transaction_ids: Iterable[str],
        goal_transaction_codes: Iterable[str],
        review_tag: TagLike,
        reviewed_by: str,
        review_notes: Optional[str] = None,
    ) -> BulkReviewResult:
        """Apply one tag across both sets atomically; nothing is written if any item fails."""
        bank_ids = list(dict.fromkeys(bank_transaction_ids))
        codes = list(dict.fromkeys(goal_transaction_codes))
        if not bank_ids and not codes:
            raise ValidationError("Bulk review needs at least one transaction")

        tag = self._validate(review_tag, reviewed_by)
        for transaction_id in bank_ids:
            self._check_bank_reviewable(transaction_id)
        for code in codes:
            self._check_goal_reviewable(code)

        fields = self._review_fields(tag, reviewed_by, review_notes)
        with self.repository.atomic():
            bank_updated = (
                self.repository.update_bank_transactions(bank_ids, **fields) if bank_ids else 0
            )
            postings_updated = (
                self.repository.update_postings_by_codes(codes, **fields) if codes else 0
            )

        logger.info(
            f"Bulk review by {reviewed_by}: {bank_updated} bank transactions, "
            f"{postings_updated} postings tagged {tag.value}"
        )
        return BulkReviewResult(bank_updated=bank_updated, postings_updated=postings_updated)

    def _validate(self, review_tag: TagLike, reviewed_by: str) -> ReviewTag:
        if not reviewed_by or not str(reviewed_by).strip():
            raise ValidationError("Reviewer is required")
        if review_tag is None or review_tag == "":
            raise ValidationError("Review tag is required")
        tag = parse_review_tag(review_tag)
        if tag is ReviewTag.REVERSAL_NETTED:
            raise ValidationError("Use reversal linking to tag a reversal pair")
        return tag

    def _check_bank_reviewable(self, transaction_id: str) -> BankTransaction:
        txn = self.repository.get_bank_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(f"Bank transaction not found: {transaction_id}")
        if txn.is_reversal_linked:
            raise ConflictError(
                f"Bank transaction {transaction_id} is part of a reversal pair"
            )
        return txn

    def _check_goal_reviewable(self, code: str) -> None:
        postings = self.repository.list_postings_by_code(code)
        if not postings:
            raise NotFoundError(f"Goal transaction not found: {code}")

    @staticmethod
    def _review_fields(
        tag: ReviewTag, reviewed_by: str, review_notes: Optional[str]
    ) -> dict:
        return {
            "review_tag": tag,
            "review_notes": review_notes,
            "reviewed_by": reviewed_by.strip(),
            "reviewed_at": datetime.now(),
        }
