"""Confidence estimation from evidence volume, strength mix and scores."""

from typing import Optional

from ethicscreen.models import (
    CategoryStatus,
    Confidence,
    Evidence,
    Status,
    Strength,
    ScreeningConfig,
    DEFAULT_CONFIG,
)


class ConfidenceEstimator:
    """Estimate how well a policy outcome is backed by its evidence."""

    def __init__(self, config: Optional[ScreeningConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def estimate(
        self,
        evidence: list[Evidence],
        categories: list[CategoryStatus],
    ) -> Confidence:
        """
        Map evidence and category results to High/Medium/Low.

        No evidence at all is a confident clean result, not an unknown.
        """
        if not evidence:
            return Confidence.HIGH

        score = self.confidence_score(evidence, categories)

        if score >= self.config.confidence_high_at:
            return Confidence.HIGH
        if score >= self.config.confidence_medium_at:
            return Confidence.MEDIUM
        return Confidence.LOW

    def confidence_score(
        self,
        evidence: list[Evidence],
        categories: list[CategoryStatus],
    ) -> int:
        high = sum(1 for e in evidence if e.strength is Strength.HIGH)
        medium = sum(1 for e in evidence if e.strength is Strength.MEDIUM)
        flagged = sum(1 for c in categories if c.status is not Status.PASS)

        score = high * 3 + medium * 2 + len(evidence) + flagged * 2

        total = sum(c.score for c in categories)
        if total > 15:
            score += 5
        elif total > 8:
            score += 3
        elif total > 0:
            score += 1

        return score
