"""Screening engine: one instrument in, one auditable verdict out."""

import logging
from datetime import datetime
from typing import Optional

from ethicscreen.models import (
    Citation,
    Confidence,
    Financials,
    Instrument,
    Policy,
    PolicyStatus,
    PolicyStatuses,
    ScreenFilters,
    ScreeningConfig,
    ScreeningResult,
    Status,
    Verdict,
    DEFAULT_CONFIG,
)
from ethicscreen.models.base import utcnow
from .combiner import POLICY_ORDER, collect_reasons, combine_confidence, combine_verdicts
from .policies import PolicyOutcome, PolicyScreener

logger = logging.getLogger(__name__)


class ScreeningEngine:
    """Screen instruments against the enabled policies.

    Pure and synchronous: everything the engine needs, including financial
    data fetched from outside, is passed in by the caller.
    """

    def __init__(self, config: Optional[ScreeningConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.screener = PolicyScreener(self.config)

    def screen(
        self,
        instrument: Instrument,
        filters: Optional[ScreenFilters] = None,
        financials: Optional[Financials] = None,
        now: Optional[datetime] = None,
    ) -> ScreeningResult:
        """Screen one instrument."""
        filters = filters or ScreenFilters()
        now = now or utcnow()

        outcomes: dict[Policy, PolicyOutcome] = {}
        for policy in POLICY_ORDER:
            if not filters.is_enabled(policy):
                continue
            outcomes[policy] = self._screen_policy(policy, instrument, filters, financials, now)

        statuses = PolicyStatuses(
            **{policy.key: outcome.status for policy, outcome in outcomes.items()}
        )

        return ScreeningResult(
            symbol=instrument.symbol,
            instrument_name=instrument.name,
            statuses=statuses,
            final_verdict=combine_verdicts(o.status.overall for o in outcomes.values()),
            reasons=collect_reasons(outcomes),
            confidence=combine_confidence(o.confidence for o in outcomes.values()),
            sources=self.generate_sources(instrument, outcomes),
            as_of=now,
        )

    def not_found(self, symbol: str, now: Optional[datetime] = None) -> ScreeningResult:
        """Placeholder result for a symbol with no resolvable instrument."""
        return ScreeningResult(
            symbol=symbol,
            instrument_name=f"Unknown Instrument ({symbol})",
            final_verdict=Verdict.PASS,
            confidence=Confidence.LOW,
            reasons=[f"Instrument {symbol} not found"],
            as_of=now or utcnow(),
        )

    def _screen_policy(
        self,
        policy: Policy,
        instrument: Instrument,
        filters: ScreenFilters,
        financials: Optional[Financials],
        now: datetime,
    ) -> PolicyOutcome:
        """Screen one policy; a failure degrades to review rather than aborting."""
        try:
            return self.screener.screen(
                policy,
                instrument,
                now,
                categories=filters.bds_categories if policy is Policy.BDS else None,
                financials=financials,
            )
        except Exception as e:
            logger.warning(f"{policy.value} screening failed for {instrument.symbol}: {e}")
            return PolicyOutcome(
                policy=policy,
                status=PolicyStatus(overall=Status.REVIEW),
                confidence=Confidence.LOW,
                policy_reasons=[f"{policy.value} screening unavailable"],
            )

    def generate_sources(
        self,
        instrument: Instrument,
        outcomes: dict[Policy, PolicyOutcome],
    ) -> list[Citation]:
        """Citations for the evidence and data behind a result, unique by URL."""
        sources: dict[str, Citation] = {}

        for policy in POLICY_ORDER:
            outcome = outcomes.get(policy)
            if outcome is None:
                continue
            for item in outcome.evidence:
                if not item.source or not item.source.url:
                    continue
                label = f"{policy.value} Evidence"
                if item.subtype:
                    label += f" - {item.subtype}"
                origin = item.source.domain or item.source.title or item.source.publisher
                if origin:
                    label += f" from {origin}"
                sources.setdefault(item.source.url, Citation(label=label, url=item.source.url))

        if Policy.DEFENSE in outcomes:
            for contract in instrument.contracts:
                if contract.source and contract.source.url:
                    sources.setdefault(
                        contract.source.url,
                        Citation(label=f"Defense Contract - {contract.agency}", url=contract.source.url),
                    )
            for rank in instrument.arms_ranks:
                if rank.source and rank.source.url:
                    sources.setdefault(
                        rank.source.url,
                        Citation(label=f"SIPRI Arms Ranking - {rank.year}", url=rank.source.url),
                    )

        return list(sources.values())
