"""Groups ledger postings into goal transactions by goal transaction code."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence
import logging

from ..models.transaction import (
    GoalTransaction,
    LedgerPosting,
    ReviewTag,
    TransactionType,
)
from ..utils.exceptions import InvariantViolationError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class _Group:
    code: str
    goal_id: str
    transaction_date: date
    transaction_type: TransactionType
    external_transaction_id: Optional[str]
    fund_amounts: dict[str, Decimal]
    total: Decimal = ZERO
    posting_ids: list[str] = field(default_factory=list)
    review_tag: Optional[ReviewTag] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    variance_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_reason: Optional[str] = None

class LedgerAggregator:
    """
    Builds goal transactions from raw postings.

    Postings whose source is excluded (internal transfer reversals) never
    contribute. Groups keep the order in which their first posting is seen.
    """

    def __init__(
        self,
        fund_codes: Sequence[str],
        excluded_sources: Iterable[str] = ("Transfer_Reversal",),
    ):
        self.fund_codes = list(fund_codes)
        self.excluded_sources = set(excluded_sources)

    def is_excluded(self, posting: LedgerPosting) -> bool:
        return posting.source is not None and posting.source in self.excluded_sources

    def aggregate(self, postings: Iterable[LedgerPosting]) -> list[GoalTransaction]:
        """
        Aggregate postings into goal transactions.

        Raises:
            InvariantViolationError: If postings under one code disagree on
                date, type or goal, or a posting names an untracked fund
        """
        groups: dict[str, _Group] = {}

        for posting in postings:
            if self.is_excluded(posting):
                continue
            if posting.fund_code not in self.fund_codes:
                raise InvariantViolationError(
                    f"Posting {posting.id} has untracked fund code {posting.fund_code!r}"
                )

            group = groups.get(posting.goal_transaction_code)
            if group is None:
                group = _Group(
                    code=posting.goal_transaction_code,
                    goal_id=posting.goal_id,
                    transaction_date=posting.transaction_date,
                    transaction_type=posting.transaction_type,
                    external_transaction_id=posting.external_transaction_id,
                    fund_amounts={code: ZERO for code in self.fund_codes},
                )
                groups[posting.goal_transaction_code] = group
            else:
                self._check_consistent(group, posting)

            group.posting_ids.append(posting.id)
            group.total += posting.amount
            group.fund_amounts[posting.fund_code] += posting.amount

            # First non-null value wins
            if group.external_transaction_id is None:
                group.external_transaction_id = posting.external_transaction_id
            if group.review_tag is None:
                group.review_tag = posting.review_tag
            if group.review_notes is None:
                group.review_notes = posting.review_notes
            if group.reviewed_by is None:
                group.reviewed_by = posting.reviewed_by
            if group.reviewed_at is None:
                group.reviewed_at = posting.reviewed_at
            group.variance_resolved = group.variance_resolved or posting.variance_resolved
            if group.resolved_at is None:
                group.resolved_at = posting.resolved_at
            if group.resolved_reason is None:
                group.resolved_reason = posting.resolved_reason

        logger.debug(f"Aggregated postings into {len(groups)} goal transactions")

        return [
            GoalTransaction(
                code=g.code,
                goal_id=g.goal_id,
                transaction_date=g.transaction_date,
                transaction_type=g.transaction_type,
                total_amount=g.total,
                fund_amounts=dict(g.fund_amounts),
                posting_ids=tuple(g.posting_ids),
                external_transaction_id=g.external_transaction_id,
                review_tag=g.review_tag,
                review_notes=g.review_notes,
                reviewed_by=g.reviewed_by,
                reviewed_at=g.reviewed_at,
                variance_resolved=g.variance_resolved,
                resolved_at=g.resolved_at,
                resolved_reason=g.resolved_reason,
            )
            for g in groups.values()
        ]

    def _check_consistent(self, group: _Group, posting: LedgerPosting) -> None:
        if posting.transaction_date != group.transaction_date:
            raise InvariantViolationError(
                f"Goal transaction {group.code} mixes dates "
                f"{group.transaction_date} and {posting.transaction_date}"
            )
        if posting.transaction_type is not group.transaction_type:
            raise InvariantViolationError(
                f"Goal transaction {group.code} mixes types "
                f"{group.transaction_type.value} and {posting.transaction_type.value}"
            )
        if posting.goal_id != group.goal_id:
            raise InvariantViolationError(
                f"Goal transaction {group.code} spans goals {group.goal_id} and {posting.goal_id}"
            )
