"""
Persistence boundary for bank transactions, ledger postings and goals.

The engine never touches storage directly; the service reads snapshots
through a Repository and applies match and review results back through it.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Iterable, Iterator, Optional
import logging
import threading

from .models.transaction import BankTransaction, Goal, LedgerPosting
from .utils.dates import DateRange, within
from .utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

BANK_WRITABLE_FIELDS = frozenset(
    {
        "match_status",
        "matched_goal_transaction_code",
        "match_confidence",
        "matched_at",
        "review_tag",
        "review_notes",
        "reviewed_by",
        "reviewed_at",
        "linked_reversal_id",
        "variance_resolved",
        "resolved_at",
        "resolved_reason",
    }
)
POSTING_WRITABLE_FIELDS = frozenset(
    {
        "review_tag",
        "review_notes",
        "reviewed_by",
        "reviewed_at",
        "variance_resolved",
        "resolved_at",
        "resolved_reason",
    }
)


class Repository(ABC):
    """Abstract store of goals, bank transactions and ledger postings."""

    @abstractmethod
    def get_goal(self, goal_id: str) -> Optional[Goal]:
        pass

    @abstractmethod
    def list_goals(self) -> list[Goal]:
        pass

    @abstractmethod
    def get_bank_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        pass

    @abstractmethod
    def list_bank_transactions(
        self, goal_id: Optional[str] = None, date_range: Optional[DateRange] = None
    ) -> list[BankTransaction]:
        """Bank transactions ordered by date descending, then insertion order."""
        pass

    @abstractmethod
    def list_ledger_postings(
        self, goal_id: Optional[str] = None, date_range: Optional[DateRange] = None
    ) -> list[LedgerPosting]:
        """Postings ordered like bank transactions, excluded sources filtered out."""
        pass

    @abstractmethod
    def list_postings_by_code(self, goal_transaction_code: str) -> list[LedgerPosting]:
        pass

    @abstractmethod
    def update_bank_transactions(self, transaction_ids: Iterable[str], **changes: Any) -> int:
        """Apply the same field changes to every listed bank transaction."""
        pass

    @abstractmethod
    def update_postings_by_codes(self, codes: Iterable[str], **changes: Any) -> int:
        """Apply the same field changes to every posting under the given codes."""
        pass

    @abstractmethod
    def atomic(self) -> Any:
        """Context manager: all writes inside land together or not at all."""
        pass


class InMemoryRepository(Repository):
    """
    Dictionary-backed repository.

    Records are frozen, so readers always hold an immutable snapshot; writes
    swap in replaced copies under a re-entrant lock.
    """

    def __init__(self, excluded_sources: Iterable[str] = ("Transfer_Reversal",)):
        self.excluded_sources = set(excluded_sources)
        self._lock = threading.RLock()
        self._goals: dict[str, Goal] = {}
        self._bank: dict[str, BankTransaction] = {}
        self._postings: dict[str, LedgerPosting] = {}

    # Loading

    def add_goal(self, goal: Goal) -> None:
        with self._lock:
            self._goals[goal.goal_id] = goal

    def add_bank_transactions(self, transactions: Iterable[BankTransaction]) -> None:
        with self._lock:
            for txn in transactions:
                if txn.id in self._bank:
                    raise ValidationError(f"Duplicate bank transaction id: {txn.id}")
                self._bank[txn.id] = txn
                self._goals.setdefault(txn.goal_id, Goal(goal_id=txn.goal_id))

    def add_postings(self, postings: Iterable[LedgerPosting]) -> None:
        with self._lock:
            for posting in postings:
                if posting.id in self._postings:
                    raise ValidationError(f"Duplicate ledger posting id: {posting.id}")
                self._postings[posting.id] = posting
                self._goals.setdefault(posting.goal_id, Goal(goal_id=posting.goal_id))

    # Reads

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return self._goals.get(goal_id)

    def list_goals(self) -> list[Goal]:
        with self._lock:
            return sorted(self._goals.values(), key=lambda g: g.goal_id)

    def get_bank_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        return self._bank.get(transaction_id)

    def list_bank_transactions(
        self, goal_id: Optional[str] = None, date_range: Optional[DateRange] = None
    ) -> list[BankTransaction]:
        with self._lock:
            rows = [
                t
                for t in self._bank.values()
                if (goal_id is None or t.goal_id == goal_id)
                and within(t.transaction_date, date_range)
            ]
        return sorted(rows, key=lambda t: t.transaction_date, reverse=True)

    def list_ledger_postings(
        self, goal_id: Optional[str] = None, date_range: Optional[DateRange] = None
    ) -> list[LedgerPosting]:
        with self._lock:
            rows = [
                p
                for p in self._postings.values()
                if (goal_id is None or p.goal_id == goal_id)
                and within(p.transaction_date, date_range)
                and not self._is_excluded(p)
            ]
        return sorted(rows, key=lambda p: p.transaction_date, reverse=True)

    def list_postings_by_code(self, goal_transaction_code: str) -> list[LedgerPosting]:
        with self._lock:
            return [
                p
                for p in self._postings.values()
                if p.goal_transaction_code == goal_transaction_code and not self._is_excluded(p)
            ]

    # Writes

    def update_bank_transactions(self, transaction_ids: Iterable[str], **changes: Any) -> int:
        _check_fields(changes, BANK_WRITABLE_FIELDS)
        ids = list(dict.fromkeys(transaction_ids))
        with self._lock:
            missing = [i for i in ids if i not in self._bank]
            if missing:
                raise NotFoundError(f"Bank transaction(s) not found: {', '.join(missing)}")
            for transaction_id in ids:
                self._bank[transaction_id] = replace(self._bank[transaction_id], **changes)
        return len(ids)

    def update_postings_by_codes(self, codes: Iterable[str], **changes: Any) -> int:
        _check_fields(changes, POSTING_WRITABLE_FIELDS)
        wanted = set(codes)
        updated = 0
        with self._lock:
            for posting_id, posting in self._postings.items():
                if posting.goal_transaction_code in wanted and not self._is_excluded(posting):
                    self._postings[posting_id] = replace(posting, **changes)
                    updated += 1
        return updated

    def _is_excluded(self, posting: LedgerPosting) -> bool:
        return posting.source is not None and posting.source in self.excluded_sources

    @contextmanager
    def atomic(self) -> Iterator["InMemoryRepository"]:
        with self._lock:
            bank_snapshot = dict(self._bank)
            posting_snapshot = dict(self._postings)
            try:
                yield self
            except BaseException:
                self._bank = bank_snapshot
                self._postings = posting_snapshot
                logger.debug("Rolled back in-memory writes")
                raise


def _check_fields(changes: dict[str, Any], allowed: frozenset) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Fields not writable: {', '.join(sorted(unknown))}")
