"""Matching engine, strategies and tolerance rules."""

from .aggregator import LedgerAggregator
from .engine import MatchingEngine
from .strategies import (
    MatchPool,
    MatchingStrategy,
    ExactIdStrategy,
    AmountWindowStrategy,
    BankSplitStrategy,
    LedgerSplitStrategy,
)
from .subset_sum import MAX_EXHAUSTIVE_CANDIDATES, find_combination_sum
from .tolerance import ToleranceClassifier

__all__ = [
    "LedgerAggregator",
    "MatchingEngine",
    "MatchPool",
    "MatchingStrategy",
    "ExactIdStrategy",
    "AmountWindowStrategy",
    "BankSplitStrategy",
    "LedgerSplitStrategy",
    "MAX_EXHAUSTIVE_CANDIDATES",
    "find_combination_sum",
    "ToleranceClassifier",
]
