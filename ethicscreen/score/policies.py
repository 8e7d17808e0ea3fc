"""Per-policy screens built on the category scorer."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ethicscreen.models import (
    CategoryStatus,
    Confidence,
    DefenseContract,
    Evidence,
    Financials,
    Instrument,
    Policy,
    PolicyStatus,
    Status,
    ScreeningConfig,
    DEFAULT_CONFIG,
    lowest_confidence,
    worst_status,
)
from .category import CategoryScorer
from .confidence import ConfidenceEstimator
from .grouper import group_evidence

logger = logging.getLogger(__name__)


@dataclass
class PolicyOutcome:
    """Result of screening one instrument against one policy."""

    policy: Policy
    status: PolicyStatus
    confidence: Confidence = Confidence.HIGH
    # Policy reasons not already captured as category evidence
    policy_reasons: list[str] = field(default_factory=list)
    # Evidence that was actually scored, for citations
    evidence: list[Evidence] = field(default_factory=list)

    @property
    def evidence_texts(self) -> list[str]:
        texts = []
        for category in self.status.categories:
            texts.extend(category.evidence_texts)
        return texts

    @property
    def reasons(self) -> list[str]:
        return self.evidence_texts + self.policy_reasons


class PolicyScreener:
    """Screen an instrument against each policy's rules."""

    def __init__(self, config: Optional[ScreeningConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.scorer = CategoryScorer(self.config)
        self.estimator = ConfidenceEstimator(self.config)

    def screen(
        self,
        policy: Policy,
        instrument: Instrument,
        now: datetime,
        categories: Optional[set[str]] = None,
        financials: Optional[Financials] = None,
    ) -> PolicyOutcome:
        """Dispatch to the policy's screen."""
        if policy is Policy.BDS:
            return self.screen_bds(instrument, now, categories)
        if policy is Policy.DEFENSE:
            return self.screen_defense(instrument, now)
        if policy is Policy.SURVEILLANCE:
            return self.screen_surveillance(instrument, now)
        if policy is Policy.SHARIAH:
            return self.screen_shariah(instrument, now, financials)
        raise ValueError(f"Unknown policy: {policy}")

    def screen_bds(
        self,
        instrument: Instrument,
        now: datetime,
        categories: Optional[set[str]] = None,
    ) -> PolicyOutcome:
        """Boycott exposure: worst status across the scored sub-categories."""
        scored, evidence = self._score_categories(instrument, Policy.BDS, now, categories)
        return self._outcome(Policy.BDS, scored, evidence)

    def screen_defense(self, instrument: Instrument, now: datetime) -> PolicyOutcome:
        """Defense exposure: evidence plus arms ranking and contract totals."""
        rules = self.config.defense
        scored, evidence = self._score_categories(instrument, Policy.DEFENSE, now)
        findings: list[Status] = []
        reasons: list[str] = []
        finding_confidence = Confidence.HIGH

        ranks = [r.sipri_rank for r in instrument.arms_ranks if r.sipri_rank]
        if ranks and min(ranks) <= rules.sipri_top_rank:
            findings.append(Status.EXCLUDED)
            reasons.append(f"SIPRI Top-100 arms producer (rank: {min(ranks)})")

        contracts = [c for c in instrument.contracts if self._is_defense_contract(c)]
        total = sum(c.amount_usd for c in contracts)

        if total >= rules.major_contract_usd:
            findings.append(Status.EXCLUDED)
            reasons.append(f"Major contractor: ${total / 1_000_000:.1f}M total")
            reasons.extend(self._contract_details(contracts, rules.major_detail_count))
        elif total >= rules.minor_contract_usd:
            findings.append(Status.REVIEW)
            reasons.append(f"Minor defense contract exposure: ${total / 1_000_000:.1f}M total")
            reasons.extend(self._contract_details(contracts, rules.minor_detail_count))
            finding_confidence = Confidence.MEDIUM

        outcome = self._outcome(Policy.DEFENSE, scored, evidence, findings, reasons)
        outcome.confidence = lowest_confidence([outcome.confidence, finding_confidence])
        return outcome

    def screen_surveillance(self, instrument: Instrument, now: datetime) -> PolicyOutcome:
        """Surveillance technology: evidence plus invasive-technology tags."""
        scored, evidence = self._score_categories(instrument, Policy.SURVEILLANCE, now)
        invasive = self.config.surveillance.invasive_subtypes
        findings: list[Status] = []
        reasons: list[str] = []

        for item in evidence:
            subtype = (item.subtype or "").lower()
            matched = next((t for t in invasive if t in subtype), None)
            if matched:
                findings.append(Status.EXCLUDED)
                reasons.append(f"Invasive surveillance technology: {matched}")

        return self._outcome(Policy.SURVEILLANCE, scored, evidence, findings, reasons)

    def screen_shariah(
        self,
        instrument: Instrument,
        now: datetime,
        financials: Optional[Financials] = None,
    ) -> PolicyOutcome:
        """Religious-financial compliance: business screen and AAOIFI-style ratios."""
        rules = self.config.shariah
        scored, evidence = self._score_categories(instrument, Policy.SHARIAH, now)
        findings: list[Status] = []
        reasons: list[str] = []
        forced: Optional[Confidence] = None

        if any(rules.prohibited_marker in (e.subtype or "").lower() for e in evidence):
            findings.append(Status.EXCLUDED)
            reasons.append("Haram business activities detected")

        financials = financials or instrument.financials

        if financials is None:
            findings.append(Status.REVIEW)
            reasons.append("Insufficient financial data")
            forced = Confidence.LOW
        elif financials.market_cap <= 0:
            findings.append(Status.REVIEW)
            reasons.append("No market cap data")
            forced = Confidence.LOW
        else:
            if financials.is_estimated:
                reasons.append("Using estimated financial data - results may vary")
                forced = Confidence.MEDIUM

            ratios = [
                ("debt", financials.debt, rules.max_debt_ratio),
                ("cash", financials.cash_securities, rules.max_cash_ratio),
                ("receivables", financials.receivables, rules.max_receivables_ratio),
            ]
            for name, value, cap in ratios:
                ratio = value / financials.market_cap * 100
                if ratio > cap:
                    findings.append(Status.EXCLUDED)
                    reasons.append(f"High {name} ratio: {ratio:.1f}% (max {cap:.0f}%)")

        outcome = self._outcome(Policy.SHARIAH, scored, evidence, findings, reasons)
        if forced is not None:
            outcome.confidence = forced
        return outcome

    def _score_categories(
        self,
        instrument: Instrument,
        policy: Policy,
        now: datetime,
        categories: Optional[set[str]] = None,
    ) -> tuple[list[CategoryStatus], list[Evidence]]:
        """Group and score a policy's evidence; returns statuses and scored evidence."""
        groups = group_evidence(instrument.evidence, policy, categories)
        scored: list[CategoryStatus] = []
        evidence: list[Evidence] = []

        for category, group in groups.items():
            try:
                scored.append(self.scorer.evaluate(category, group, now))
                evidence.extend(group)
            except Exception as e:
                logger.warning(
                    f"Scoring failed for {instrument.symbol} {policy.value}/{category}: {e}"
                )
                scored.append(CategoryStatus(category=category, status=Status.PASS))

        return scored, evidence

    def _outcome(
        self,
        policy: Policy,
        categories: list[CategoryStatus],
        evidence: list[Evidence],
        findings: Optional[list[Status]] = None,
        reasons: Optional[list[str]] = None,
    ) -> PolicyOutcome:
        overall = worst_status([c.status for c in categories] + (findings or []))
        return PolicyOutcome(
            policy=policy,
            status=PolicyStatus(overall=overall, categories=categories),
            confidence=self.estimator.estimate(evidence, categories),
            policy_reasons=reasons or [],
            evidence=evidence,
        )

    def _is_defense_contract(self, contract: DefenseContract) -> bool:
        agency = contract.agency.lower()
        rules = self.config.defense
        if any(keyword in agency for keyword in rules.agency_keywords):
            return True
        return bool(contract.psc and contract.psc.startswith(rules.weapons_psc_prefix))

    @staticmethod
    def _contract_details(contracts: list[DefenseContract], limit: int) -> list[str]:
        return [
            f"{c.agency}: ${c.amount_usd / 1_000_000:.1f}M"
            for c in contracts[:limit]
        ]
