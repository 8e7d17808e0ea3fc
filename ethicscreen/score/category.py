"""Category scoring: evidence group -> score and tri-state status."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ethicscreen.models import CategoryStatus, Evidence, Status, ScreeningConfig, DEFAULT_CONFIG

logger = logging.getLogger(__name__)


class CategoryScorer:
    """Score an evidence group against per-category thresholds."""

    def __init__(self, config: Optional[ScreeningConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def evaluate(
        self,
        category: str,
        group: list[Evidence],
        now: datetime,
    ) -> CategoryStatus:
        """Score one group and derive its status."""
        if not group:
            return CategoryStatus(category=category)

        score = sum(self.score_item(item, now) for item in group)
        status = self.status_for(category, score, len(group))

        return CategoryStatus(
            category=category,
            status=status,
            score=score,
            evidence_texts=[self.format_evidence(item) for item in group],
        )

    def score_item(self, item: Evidence, now: datetime) -> int:
        """Base points by strength plus a bonus for recent observations."""
        score = self.config.points_for(item.strength)

        if item.observed_at is not None:
            age = now - item.observed_at
            if age < timedelta(days=self.config.recency_window_days):
                score += self.config.recency_bonus

        return score

    def status_for(self, category: str, score: int, item_count: int) -> Status:
        """Apply the category's thresholds to a score."""
        threshold = self.config.threshold_for(category)

        if score >= threshold.exclude_at:
            return Status.EXCLUDED
        # Volume alone triggers review, even when the score is low.
        if score >= threshold.review_at or item_count >= self.config.review_item_count:
            return Status.REVIEW
        return Status.PASS

    @staticmethod
    def format_evidence(item: Evidence) -> str:
        """Format an evidence item as a user-facing reason line."""
        notes = item.notes.strip() or f"{item.policy.value} activity detected"
        text = f"[{item.strength.label}] {notes}"
        if item.observed_at is not None:
            text += f" ({item.observed_at.strftime('%Y-%m-%d')})"
        return text
