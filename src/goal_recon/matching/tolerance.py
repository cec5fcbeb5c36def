"""
Tolerance classification for amount comparisons.

Tolerance is relative to the *expected* amount with an absolute floor, so
classify(a, b) and classify(b, a) can disagree near the boundary.
"""

from decimal import Decimal
from typing import Mapping, Optional

from ..config import ToleranceConfig
from ..models.summary import Variance, VectorVariance

ZERO = Decimal("0")


class ToleranceClassifier:
    """Decides MATCHED versus VARIANCE for amounts and fund vectors."""

    def __init__(self, config: Optional[ToleranceConfig] = None):
        config = config or ToleranceConfig()
        self.relative = Decimal(config.relative)
        self.absolute_floor = Decimal(config.absolute_floor)

    def tolerance_for(self, expected: Decimal) -> Decimal:
        """max(|expected| * relative, absolute_floor)."""
        return max(abs(Decimal(expected)) * self.relative, self.absolute_floor)

    def classify(self, observed: Decimal, expected: Decimal) -> Variance:
        difference = Decimal(observed) - Decimal(expected)
        tolerance = self.tolerance_for(expected)
        return Variance(
            difference=difference,
            tolerance=tolerance,
            exceeds_tolerance=abs(difference) > tolerance,
        )

    def within(self, observed: Decimal, expected: Decimal) -> bool:
        return not self.classify(observed, expected).exceeds_tolerance

    def classify_vector(
        self,
        observed_total: Decimal,
        expected_total: Decimal,
        observed_funds: Mapping[str, Decimal],
        expected_funds: Mapping[str, Decimal],
    ) -> VectorVariance:
        """
        Classify the total and every fund component independently.

        A fund missing on one side counts as zero on that side.
        """
        codes = list(expected_funds)
        codes.extend(code for code in observed_funds if code not in expected_funds)
        funds = {
            code: self.classify(
                observed_funds.get(code, ZERO), expected_funds.get(code, ZERO)
            )
            for code in codes
        }
        return VectorVariance(
            total=self.classify(observed_total, expected_total), funds=funds
        )
