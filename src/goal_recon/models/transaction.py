"""Data models for bank transactions, ledger postings and match results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

ZERO = Decimal("0")


class TransactionType(Enum):
    """Direction of a movement for a goal."""

    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"

    @property
    def opposite(self) -> "TransactionType":
        if self is TransactionType.DEPOSIT:
            return TransactionType.WITHDRAWAL
        return TransactionType.DEPOSIT


class MatchStatus(Enum):
    """Match state of a bank transaction as persisted."""

    UNMATCHED = "UNMATCHED"
    MATCHED = "MATCHED"


class MatchType(Enum):
    """Which matching pass produced a match."""

    EXACT = "EXACT"
    AMOUNT = "AMOUNT"
    SPLIT_BANK_TO_LEDGER = "SPLIT_BANK_TO_LEDGER"
    SPLIT_LEDGER_TO_BANK = "SPLIT_LEDGER_TO_BANK"


class ReviewTag(Enum):
    """Explanation attached to an unmatched transaction during variance review."""

    DUPLICATE_TRANSACTION = "DUPLICATE_TRANSACTION"
    TIMING_DIFFERENCE = "TIMING_DIFFERENCE"
    MISSING_IN_LEDGER = "MISSING_IN_LEDGER"
    MISSING_IN_BANK = "MISSING_IN_BANK"
    AMOUNT_DISCREPANCY = "AMOUNT_DISCREPANCY"
    REVERSAL_NETTED = "REVERSAL_NETTED"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Goal:
    """An investment goal owned by an account."""

    goal_id: str
    account_number: str = ""
    client_name: str = ""


@dataclass(frozen=True)
class BankTransaction:
    """
    One bank-reported movement for a goal.

    Amounts are kept as reported; the per-fund vector is keyed by fund code.
    """

    id: str
    goal_id: str
    transaction_type: TransactionType
    transaction_date: date
    total_amount: Decimal
    fund_amounts: dict[str, Decimal] = field(default_factory=dict)
    external_transaction_id: Optional[str] = None

    # Match fields (written by apply_matches)
    match_status: MatchStatus = MatchStatus.UNMATCHED
    matched_goal_transaction_code: Optional[str] = None
    match_confidence: Optional[float] = None
    matched_at: Optional[datetime] = None

    # Review fields
    review_tag: Optional[ReviewTag] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    linked_reversal_id: Optional[str] = None

    # Set when a later upload supplies the missing counterpart
    variance_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_reason: Optional[str] = None

    @property
    def is_matched(self) -> bool:
        return (
            self.match_status is MatchStatus.MATCHED
            or self.matched_goal_transaction_code is not None
        )

    @property
    def is_reversal_linked(self) -> bool:
        return (
            self.linked_reversal_id is not None
            or self.review_tag is ReviewTag.REVERSAL_NETTED
        )


@dataclass(frozen=True)
class LedgerPosting:
    """One posting against a single fund for a goal."""

    id: str
    goal_id: str
    fund_code: str
    transaction_type: TransactionType
    transaction_date: date
    amount: Decimal
    goal_transaction_code: str
    external_transaction_id: Optional[str] = None
    source: Optional[str] = None

    review_tag: Optional[ReviewTag] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    variance_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_reason: Optional[str] = None


@dataclass(frozen=True)
class GoalTransaction:
    """
    Aggregate of all ledger postings sharing one goal transaction code.

    Never persisted: review writes against a goal transaction fan out to
    every constituent posting.
    """

    code: str
    goal_id: str
    transaction_date: date
    transaction_type: TransactionType
    total_amount: Decimal
    fund_amounts: dict[str, Decimal]
    posting_ids: tuple[str, ...]
    external_transaction_id: Optional[str] = None

    review_tag: Optional[ReviewTag] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    variance_resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_reason: Optional[str] = None

@dataclass(frozen=True)
class Match:
    """Links a set of bank transactions to a set of ledger postings."""

    bank_ids: tuple[str, ...]
    posting_ids: tuple[str, ...]
    goal_transaction_codes: tuple[str, ...]
    match_type: MatchType
    confidence: float
    bank_total: Decimal
    ledger_total: Decimal

    @property
    def amount_variance(self) -> Decimal:
        return self.bank_total - self.ledger_total


@dataclass
class MatchingResult:
    """Output of one matching run over a single goal snapshot."""

    matches: list[Match] = field(default_factory=list)
    unmatched_bank: list[str] = field(default_factory=list)
    unmatched_goal: list[str] = field(default_factory=list)

    @property
    def matches_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for match in self.matches:
            key = match.match_type.value
            counts[key] = counts.get(key, 0) + 1
        return counts


@dataclass
class GoalTransactionsView:
    """Drill-down for one goal: raw inputs, matches and leftovers."""

    bank_transactions: list[BankTransaction]
    goal_transactions: list[GoalTransaction]
    matches: list[Match]
    unmatched_bank: list[str]
    unmatched_goal: list[str]


def generate_goal_transaction_code(
    transaction_date: date, account_number: str, goal_id: str
) -> str:
    """Build the code linking postings of one movement: YYYY-MM-DD-account-goal."""
    return f"{transaction_date.isoformat()}-{account_number.strip()}-{goal_id.strip()}"
