"""Variance review workflow, reversal linking and variance resolution."""

from .resolution import RESOLVABLE_TAGS, VarianceResolver
from .reversals import ReversalLinker, is_reversal_of
from .state import (
    Unreconciled,
    VarianceReviewWorkflow,
    derive_review_status,
    find_unreconciled,
    parse_review_tag,
)

__all__ = [
    "RESOLVABLE_TAGS",
    "VarianceResolver",
    "ReversalLinker",
    "is_reversal_of",
    "Unreconciled",
    "VarianceReviewWorkflow",
    "derive_review_status",
    "find_unreconciled",
    "parse_review_tag",
]
