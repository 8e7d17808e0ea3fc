"""Look-through aggregation: roll holding verdicts up by weight."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ethicscreen.models import (
    Basket,
    BasketExposure,
    BasketVerdict,
    Citation,
    Confidence,
    Holding,
    PolicyStatus,
    PolicyStatuses,
    ScreeningConfig,
    ScreeningResult,
    Status,
    Verdict,
    DEFAULT_CONFIG,
)
from ethicscreen.models.base import utcnow
from .combiner import POLICY_ORDER

logger = logging.getLogger(__name__)


@dataclass
class HoldingOutcome:
    """A basket position together with its screening result."""

    holding: Holding
    result: ScreeningResult

    @property
    def label(self) -> str:
        return self.holding.name or self.result.instrument_name or self.holding.symbol


class LookThroughAggregator:
    """Derive a basket verdict from its screened holdings."""

    def __init__(self, config: Optional[ScreeningConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def basket_verdict(self, excluded_weight: float, review_weight: float) -> Verdict:
        """Apply the exposure thresholds to aggregate weights."""
        rules = self.config.basket
        if excluded_weight >= rules.exclude_at_excluded_weight:
            return Verdict.EXCLUDED
        if (
            excluded_weight >= rules.review_at_excluded_weight
            or review_weight >= rules.review_at_review_weight
        ):
            return Verdict.REVIEW
        return Verdict.PASS

    def aggregate(
        self,
        basket: Basket,
        outcomes: list[HoldingOutcome],
        skipped: int = 0,
        now: Optional[datetime] = None,
    ) -> BasketVerdict:
        """Fold holding results into one basket verdict."""
        excluded = [o for o in outcomes if o.result.final_verdict is Verdict.EXCLUDED]
        excluded_weight = sum(o.holding.weight for o in excluded)
        review_weight = sum(
            o.holding.weight for o in outcomes if o.result.final_verdict is Verdict.REVIEW
        )

        exposure = BasketExposure(
            excluded_weight=excluded_weight,
            review_weight=review_weight,
            holdings_screened=len(outcomes),
            holdings_skipped=skipped,
        )

        if not outcomes:
            logger.warning(f"No resolvable holdings in basket {basket.symbol}")
            return self._verdict(
                basket,
                Verdict.REVIEW,
                ["No resolvable holdings; basket exposure unknown"],
                Confidence.LOW,
                PolicyStatuses(),
                exposure,
                now,
            )

        verdict = self.basket_verdict(excluded_weight, review_weight)

        reasons = [
            f"Excluded holdings: {excluded_weight:.1f}% of basket",
            f"Review holdings: {review_weight:.1f}% of basket",
        ]
        if verdict is Verdict.EXCLUDED:
            offenders = sorted(excluded, key=lambda o: o.holding.weight, reverse=True)
            reasons.extend(
                f"{o.label} ({o.holding.weight:.1f}%)"
                for o in offenders[: self.config.basket.named_offenders]
            )

        return self._verdict(
            basket,
            verdict,
            reasons,
            self._confidence(outcomes, skipped),
            self._policy_statuses(outcomes),
            exposure,
            now,
        )

    def depth_limit_placeholder(
        self,
        holding: Holding,
        now: Optional[datetime] = None,
    ) -> ScreeningResult:
        """Stand-in for a nested basket that is not looked through."""
        return ScreeningResult(
            symbol=holding.symbol,
            instrument_name=holding.name or holding.symbol,
            final_verdict=Verdict.REVIEW,
            confidence=Confidence.LOW,
            reasons=[f"Look-through depth limit reached for {holding.symbol}"],
            as_of=now or utcnow(),
        )

    def _policy_statuses(self, outcomes: list[HoldingOutcome]) -> PolicyStatuses:
        """Apply the same weight thresholds per policy."""
        statuses = {}
        for policy in POLICY_ORDER:
            excluded_weight = 0.0
            review_weight = 0.0
            for outcome in outcomes:
                overall = outcome.result.statuses.get(policy).overall
                if overall is Status.EXCLUDED:
                    excluded_weight += outcome.holding.weight
                elif overall is Status.REVIEW:
                    review_weight += outcome.holding.weight
            verdict = self.basket_verdict(excluded_weight, review_weight)
            statuses[policy.key] = PolicyStatus(overall=verdict.to_status())
        return PolicyStatuses(**statuses)

    @staticmethod
    def _confidence(outcomes: list[HoldingOutcome], skipped: int) -> Confidence:
        if skipped or any(o.result.confidence is Confidence.LOW for o in outcomes):
            return Confidence.MEDIUM
        return Confidence.HIGH

    @staticmethod
    def _verdict(
        basket: Basket,
        verdict: Verdict,
        reasons: list[str],
        confidence: Confidence,
        statuses: PolicyStatuses,
        exposure: BasketExposure,
        now: Optional[datetime],
    ) -> BasketVerdict:
        sources = []
        if basket.holdings_url:
            label = f"{basket.provider or basket.name} Holdings"
            sources.append(Citation(label=label, url=basket.holdings_url))

        return BasketVerdict(
            symbol=basket.symbol,
            instrument_name=basket.name,
            statuses=statuses,
            final_verdict=verdict,
            reasons=reasons,
            confidence=confidence,
            sources=sources,
            exposure=exposure,
            as_of=now or utcnow(),
        )
