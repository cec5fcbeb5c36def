"""Result models for summaries, review status and batch runs."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, Optional, TypeVar

from .transaction import MatchingResult, ReviewTag, TransactionType

T = TypeVar("T")


class VarianceStatus(Enum):
    """Headline outcome of comparing bank and ledger amounts."""

    MATCHED = "MATCHED"
    VARIANCE = "VARIANCE"


class ReviewStatus(Enum):
    """Review progress over the unmatched items of a goal."""

    NOT_APPLICABLE = "NOT_APPLICABLE"
    UNREVIEWED = "UNREVIEWED"
    PARTIALLY_REVIEWED = "PARTIALLY_REVIEWED"
    REVIEWED = "REVIEWED"


class StatusFilter(Enum):
    """Status filter accepted by the goal and fund summaries."""

    ALL = "ALL"
    MATCHED = "MATCHED"
    VARIANCE = "VARIANCE"
    REVIEWED = "REVIEWED"


class ReviewStateFilter(Enum):
    """Review-state filter for the variance listing."""

    ALL = "ALL"
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"


class TransactionSide(Enum):
    BANK = "BANK"
    GOAL = "GOAL"


@dataclass(frozen=True)
class Variance:
    """Observed difference between two amounts and whether it breaks tolerance."""

    difference: Decimal
    tolerance: Decimal
    exceeds_tolerance: bool


@dataclass(frozen=True)
class VectorVariance:
    """Total plus per-fund variance; exceeds if any component does."""

    total: Variance
    funds: dict[str, Variance]

    @property
    def exceeds_tolerance(self) -> bool:
        return self.total.exceeds_tolerance or any(
            v.exceeds_tolerance for v in self.funds.values()
        )


@dataclass(frozen=True)
class SummaryFilters:
    """Optional filters shared by the summary and listing operations."""

    goal_id: Optional[str] = None
    account_number: Optional[str] = None
    client_search: Optional[str] = None
    status: StatusFilter = StatusFilter.ALL


@dataclass
class GoalSummary:
    """Deposit and withdrawal totals for one goal, bank versus ledger."""

    goal_id: str
    client_name: str
    account_number: str

    bank_deposits: Decimal
    ledger_deposits: Decimal
    deposit_variance: Decimal
    deposit_bank_count: int
    deposit_ledger_count: int

    bank_withdrawals: Decimal
    ledger_withdrawals: Decimal
    withdrawal_variance: Decimal
    withdrawal_bank_count: int
    withdrawal_ledger_count: int

    status: VarianceStatus
    has_variance: bool
    review_status: ReviewStatus
    unreviewed_count: int
    reviewed_count: int


@dataclass
class FundSummary:
    """Per-fund net amounts for one goal, bank versus ledger."""

    goal_id: str
    client_name: str
    account_number: str
    bank_funds: dict[str, Decimal]
    bank_total: Decimal
    ledger_funds: dict[str, Decimal]
    ledger_total: Decimal
    fund_variances: dict[str, Decimal]
    total_variance: Decimal
    status: VarianceStatus
    review_status: ReviewStatus


@dataclass
class Page(Generic[T]):
    """One page of a filtered result set plus totals over the whole set."""

    items: list[T]
    total: int
    page: int
    page_size: int
    aggregates: dict[str, Decimal] = field(default_factory=dict)
    skipped_goals: list[str] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


@dataclass
class ReviewStatusReport:
    """Review progress for one goal over a date range."""

    goal_id: str
    status: ReviewStatus
    total_unmatched: int
    reviewed_count: int
    pending_count: int
    by_tag: dict[str, int] = field(default_factory=dict)


@dataclass
class VarianceItem:
    """An unmatched bank or goal transaction awaiting (or carrying) review."""

    source: TransactionSide
    id: str
    goal_id: str
    client_name: str
    account_number: str
    transaction_date: date
    transaction_type: TransactionType
    amount: Decimal
    external_transaction_id: Optional[str] = None
    review_tag: Optional[ReviewTag] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    variance_resolved: bool = False

@dataclass
class VarianceListing:
    page: Page[VarianceItem]
    total_unmatched: int
    pending_review: int
    reviewed: int
    by_tag: dict[str, int] = field(default_factory=dict)


@dataclass
class BulkReviewResult:
    bank_updated: int
    postings_updated: int


@dataclass
class BatchResult:
    """Per-goal outcome counts of a batch matching run."""

    processed: int = 0
    failed: int = 0
    cancelled: int = 0
    matches_found: int = 0
    bank_updated: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    results: dict[str, MatchingResult] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.processed + self.failed + self.cancelled


@dataclass
class ResolutionDetail:
    """One reviewed variance that a later upload has resolved."""

    source: TransactionSide
    id: str
    goal_id: str
    external_transaction_id: Optional[str]
    amount: Decimal
    original_tag: ReviewTag
    resolved_reason: str


@dataclass
class ResolutionResult:
    resolved: int
    by_tag: dict[str, int] = field(default_factory=dict)
    details: list[ResolutionDetail] = field(default_factory=list)


@dataclass
class ResolvedVariance:
    """A resolved variance as listed in the resolution report."""

    source: TransactionSide
    id: str
    goal_id: str
    client_name: str
    account_number: str
    transaction_date: date
    transaction_type: TransactionType
    amount: Decimal
    external_transaction_id: Optional[str]
    original_tag: Optional[ReviewTag]
    review_notes: Optional[str]
    resolved_at: Optional[datetime]
    resolved_reason: Optional[str]


@dataclass
class ResolvedVariancesReport:
    items: list[ResolvedVariance]
    total_resolved: int
    by_tag: dict[str, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)


@dataclass
class TagResolutionStats:
    total: int = 0
    resolved: int = 0

    @property
    def pending(self) -> int:
        return self.total - self.resolved


@dataclass
class ResolutionStats:
    """Resolution progress over every item carrying an auto-resolvable tag."""

    by_tag: dict[str, TagResolutionStats] = field(default_factory=dict)

    @property
    def total_tagged(self) -> int:
        return sum(s.total for s in self.by_tag.values())

    @property
    def total_resolved(self) -> int:
        return sum(s.resolved for s in self.by_tag.values())

    @property
    def pending(self) -> int:
        return self.total_tagged - self.total_resolved
