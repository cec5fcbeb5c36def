"""
Multi-pass matching engine for goal reconciliation.
Runs configurable matching passes in priority order over one goal snapshot.
"""

from datetime import datetime
from typing import Optional, Sequence
import logging

from ..config import (
    PASS_AMOUNT,
    PASS_EXACT,
    PASS_SPLIT_BANK_TO_LEDGER,
    PASS_SPLIT_LEDGER_TO_BANK,
    ReconConfig,
)
from ..models.transaction import BankTransaction, GoalTransaction, Match, MatchingResult
from .strategies import (
    AmountWindowStrategy,
    BankSplitStrategy,
    ExactIdStrategy,
    LedgerSplitStrategy,
    MatchingStrategy,
    MatchPool,
)
from .tolerance import ToleranceClassifier

logger = logging.getLogger(__name__)


class MatchingEngine:
    """
    Matches bank transactions to goal transactions.

    Passes run in priority order and every record is claimed at most once, so
    the emitted matches partition the inputs. The engine keeps no state
    between calls; the same inputs in the same order give the same matches.
    """

    def __init__(
        self,
        config: Optional[ReconConfig] = None,
        classifier: Optional[ToleranceClassifier] = None,
    ):
        """
        Initialize the matching engine.

        Args:
            config: Application configuration
            classifier: Tolerance classifier shared with the summaries
        """
        self.config = config or ReconConfig()
        self.classifier = classifier or ToleranceClassifier(self.config.tolerance)

    def _build_strategies(self, date_window_days: int) -> list[tuple[str, MatchingStrategy]]:
        """
        Build matching passes from configuration.

        Returns:
            List of (pass_name, strategy) tuples ordered by priority
        """
        matching = self.config.matching
        confidence = matching.confidence
        enabled = sorted((p for p in matching.passes if p.enabled), key=lambda p: p.priority)

        strategies: list[tuple[str, MatchingStrategy]] = []
        for matching_pass in enabled:
            if matching_pass.name == PASS_EXACT:
                strategy: MatchingStrategy = ExactIdStrategy(self.classifier, confidence.exact)
            elif matching_pass.name == PASS_AMOUNT:
                strategy = AmountWindowStrategy(
                    self.classifier,
                    date_window_days=date_window_days,
                    max_confidence=confidence.amount_max,
                    min_confidence=confidence.amount_min,
                )
            elif matching_pass.name == PASS_SPLIT_BANK_TO_LEDGER:
                strategy = BankSplitStrategy(
                    self.classifier, confidence.split, matching.split_search_limit
                )
            elif matching_pass.name == PASS_SPLIT_LEDGER_TO_BANK:
                strategy = LedgerSplitStrategy(
                    self.classifier, confidence.split, matching.split_search_limit
                )
            else:
                continue
            strategies.append((matching_pass.name, strategy))

        return strategies

    def match(
        self,
        bank_transactions: Sequence[BankTransaction],
        goal_transactions: Sequence[GoalTransaction],
        date_window_days: Optional[int] = None,
    ) -> MatchingResult:
        """
        Run every enabled pass over one snapshot.

        Args:
            bank_transactions: Bank transactions, in scan order
            goal_transactions: Aggregated goal transactions, in scan order
            date_window_days: Override for the amount pass window

        Returns:
            Matches plus the ids of unmatched bank and codes of unmatched goal transactions
        """
        start_time = datetime.now()
        window = (
            self.config.matching.date_window_days
            if date_window_days is None
            else date_window_days
        )

        pool = MatchPool(bank_transactions, goal_transactions)
        matches: list[Match] = []

        for pass_name, strategy in self._build_strategies(window):
            pass_matches = strategy.find_matches(pool)
            matches.extend(pass_matches)
            logger.debug(
                f"Pass {pass_name}: {len(pass_matches)} matches, "
                f"{len(pool.free_bank())} bank and {len(pool.free_goal())} goal remaining"
            )

        result = MatchingResult(
            matches=matches,
            unmatched_bank=[t.id for t in pool.free_bank()],
            unmatched_goal=[g.code for g in pool.free_goal()],
        )

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.debug(
            f"Matching complete in {elapsed:.3f}s: {len(matches)} matches, "
            f"{len(result.unmatched_bank)} bank-only, {len(result.unmatched_goal)} goal-only"
        )
        return result
