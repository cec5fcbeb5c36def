"""
Matching strategies for bank to ledger reconciliation.
Each strategy implements one pass over the shared pool of unclaimed records.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Sequence

from ..models.transaction import BankTransaction, GoalTransaction, Match, MatchType
from ..utils.dates import days_between
from .subset_sum import MAX_EXHAUSTIVE_CANDIDATES, find_combination_sum
from .tolerance import ToleranceClassifier

ZERO = Decimal("0")


class MatchPool:
    """
    Bank and goal transactions of one run plus what has been claimed so far.

    Claiming is monotonic: once an id is claimed no later pass sees it.
    """

    def __init__(
        self,
        bank_transactions: Sequence[BankTransaction],
        goal_transactions: Sequence[GoalTransaction],
    ):
        self.bank_transactions = list(bank_transactions)
        self.goal_transactions = list(goal_transactions)
        self.claimed_bank: set[str] = set()
        self.claimed_postings: set[str] = set()

    def bank_is_free(self, txn: BankTransaction) -> bool:
        return txn.id not in self.claimed_bank

    def goal_is_free(self, goal_txn: GoalTransaction) -> bool:
        return not any(pid in self.claimed_postings for pid in goal_txn.posting_ids)

    def free_bank(self) -> list[BankTransaction]:
        return [t for t in self.bank_transactions if self.bank_is_free(t)]

    def free_goal(self) -> list[GoalTransaction]:
        return [g for g in self.goal_transactions if self.goal_is_free(g)]

    def claim(
        self,
        bank_txns: Sequence[BankTransaction],
        goal_txns: Sequence[GoalTransaction],
        match_type: MatchType,
        confidence: float,
    ) -> Match:
        posting_ids = tuple(pid for g in goal_txns for pid in g.posting_ids)
        match = Match(
            bank_ids=tuple(t.id for t in bank_txns),
            posting_ids=posting_ids,
            goal_transaction_codes=tuple(g.code for g in goal_txns),
            match_type=match_type,
            confidence=confidence,
            bank_total=sum((t.total_amount for t in bank_txns), ZERO),
            ledger_total=sum((g.total_amount for g in goal_txns), ZERO),
        )
        self.claimed_bank.update(match.bank_ids)
        self.claimed_postings.update(posting_ids)
        return match


class MatchingStrategy(ABC):
    """Abstract base class for matching passes."""

    match_type: MatchType

    def __init__(self, classifier: ToleranceClassifier, confidence: float):
        self.classifier = classifier
        self.confidence = confidence

    @abstractmethod
    def find_matches(self, pool: MatchPool) -> list[Match]:
        """
        Claim matches from the pool.

        Args:
            pool: Shared pool of unclaimed records, mutated as matches are claimed

        Returns:
            Matches claimed by this pass, in discovery order
        """
        pass


class ExactIdStrategy(MatchingStrategy):
    """
    Same external transaction id and type, amount within tolerance.
    Highest confidence pass.
    """

    match_type = MatchType.EXACT

    def find_matches(self, pool: MatchPool) -> list[Match]:
        matches: list[Match] = []
        for bank_txn in pool.free_bank():
            if bank_txn.external_transaction_id is None:
                continue
            candidate = next(
                (
                    g
                    for g in pool.goal_transactions
                    if pool.goal_is_free(g)
                    and g.external_transaction_id == bank_txn.external_transaction_id
                    and g.transaction_type is bank_txn.transaction_type
                    and self.classifier.within(bank_txn.total_amount, g.total_amount)
                ),
                None,
            )
            if candidate is not None:
                matches.append(
                    pool.claim([bank_txn], [candidate], self.match_type, self.confidence)
                )
        return matches


class AmountWindowStrategy(MatchingStrategy):
    """
    Same type, amount within tolerance, date within the window.

    Greedy: the first qualifying goal transaction in list order wins, not the
    closest one. Confidence decays linearly from max at zero days to min at
    the window edge.
    """

    match_type = MatchType.AMOUNT

    def __init__(
        self,
        classifier: ToleranceClassifier,
        date_window_days: int = 30,
        max_confidence: float = 0.8,
        min_confidence: float = 0.5,
    ):
        super().__init__(classifier, max_confidence)
        self.date_window_days = date_window_days
        self.min_confidence = min_confidence

    def score(self, days_diff: int) -> float:
        if self.date_window_days == 0:
            return self.confidence
        span = self.confidence - self.min_confidence
        return self.confidence - (days_diff / self.date_window_days) * span

    def find_matches(self, pool: MatchPool) -> list[Match]:
        matches: list[Match] = []
        for bank_txn in pool.free_bank():
            for goal_txn in pool.goal_transactions:
                if not pool.goal_is_free(goal_txn):
                    continue
                if goal_txn.transaction_type is not bank_txn.transaction_type:
                    continue
                days_diff = days_between(bank_txn.transaction_date, goal_txn.transaction_date)
                if days_diff > self.date_window_days:
                    continue
                if not self.classifier.within(bank_txn.total_amount, goal_txn.total_amount):
                    continue
                matches.append(
                    pool.claim([bank_txn], [goal_txn], self.match_type, self.score(days_diff))
                )
                break
        return matches


class BankSplitStrategy(MatchingStrategy):
    """Several same-day bank transactions summing to one goal transaction."""

    match_type = MatchType.SPLIT_BANK_TO_LEDGER

    def __init__(
        self,
        classifier: ToleranceClassifier,
        confidence: float = 0.7,
        search_limit: int = MAX_EXHAUSTIVE_CANDIDATES,
    ):
        super().__init__(classifier, confidence)
        self.search_limit = search_limit

    def find_matches(self, pool: MatchPool) -> list[Match]:
        matches: list[Match] = []
        for goal_txn in pool.goal_transactions:
            if not pool.goal_is_free(goal_txn):
                continue
            candidates = {
                t.id: t
                for t in pool.free_bank()
                if t.transaction_type is goal_txn.transaction_type
                and t.transaction_date == goal_txn.transaction_date
            }
            combination = find_combination_sum(
                [(t.id, t.total_amount) for t in candidates.values()],
                goal_txn.total_amount,
                self.classifier.tolerance_for(goal_txn.total_amount),
                limit=self.search_limit,
            )
            if combination:
                bank_txns = [candidates[item_id] for item_id, _ in combination]
                matches.append(
                    pool.claim(bank_txns, [goal_txn], self.match_type, self.confidence)
                )
        return matches


class LedgerSplitStrategy(MatchingStrategy):
    """Several same-day goal transactions summing to one bank transaction."""

    match_type = MatchType.SPLIT_LEDGER_TO_BANK

    def __init__(
        self,
        classifier: ToleranceClassifier,
        confidence: float = 0.7,
        search_limit: int = MAX_EXHAUSTIVE_CANDIDATES,
    ):
        super().__init__(classifier, confidence)
        self.search_limit = search_limit

    def find_matches(self, pool: MatchPool) -> list[Match]:
        matches: list[Match] = []
        for bank_txn in pool.free_bank():
            candidates = {
                g.code: g
                for g in pool.free_goal()
                if g.transaction_type is bank_txn.transaction_type
                and g.transaction_date == bank_txn.transaction_date
            }
            combination = find_combination_sum(
                [(g.code, g.total_amount) for g in candidates.values()],
                bank_txn.total_amount,
                self.classifier.tolerance_for(bank_txn.total_amount),
                limit=self.search_limit,
            )
            if combination:
                goal_txns = [candidates[code] for code, _ in combination]
                matches.append(
                    pool.claim([bank_txn], goal_txns, self.match_type, self.confidence)
                )
        return matches

