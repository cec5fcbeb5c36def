"""Data models for reconciliation."""

from .transaction import (
    Goal,
    BankTransaction,
    LedgerPosting,
    GoalTransaction,
    GoalTransactionsView,
    Match,
    MatchingResult,
    MatchStatus,
    MatchType,
    ReviewTag,
    TransactionType,
    generate_goal_transaction_code,
)
from .summary import (
    BatchResult,
    BulkReviewResult,
    FundSummary,
    GoalSummary,
    Page,
    ReviewStateFilter,
    ReviewStatus,
    ReviewStatusReport,
    StatusFilter,
    SummaryFilters,
    TransactionSide,
    Variance,
    VarianceItem,
    VarianceListing,
    ResolutionDetail,
    ResolutionResult,
    ResolutionStats,
    ResolvedVariance,
    ResolvedVariancesReport,
    TagResolutionStats,
    VarianceStatus,
    VectorVariance,
)

__all__ = [
    "Goal",
    "BankTransaction",
    "LedgerPosting",
    "GoalTransaction",
    "GoalTransactionsView",
    "Match",
    "MatchingResult",
    "MatchStatus",
    "MatchType",
    "ReviewTag",
    "TransactionType",
    "generate_goal_transaction_code",
    "BatchResult",
    "BulkReviewResult",
    "FundSummary",
    "GoalSummary",
    "Page",
    "ReviewStateFilter",
    "ReviewStatus",
    "ReviewStatusReport",
    "StatusFilter",
    "SummaryFilters",
    "TransactionSide",
    "Variance",
    "VarianceItem",
    "VarianceListing",
    "VarianceStatus",
    "ResolutionDetail",
    "ResolutionResult",
    "ResolutionStats",
    "ResolvedVariance",
    "ResolvedVariancesReport",
    "TagResolutionStats",
    "VectorVariance",
]
