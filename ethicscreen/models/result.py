"""Screening result models."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from pydantic import Field

from .base import CamelModel, utcnow
from .evidence import Policy


class Status(str, Enum):
    """Per-category and per-policy outcome."""

    PASS = "pass"
    REVIEW = "review"
    EXCLUDED = "excluded"

    @property
    def severity(self) -> int:
        return _STATUS_SEVERITY[self]


class Verdict(str, Enum):
    """Final outcome for an instrument or basket."""

    PASS = "PASS"
    REVIEW = "REVIEW"
    EXCLUDED = "EXCLUDED"

    @classmethod
    def from_status(cls, status: Status) -> "Verdict":
        return cls(status.value.upper())

    def to_status(self) -> Status:
        return Status(self.value.lower())


class Confidence(str, Enum):
    """How much evidence volume and quality backs a verdict."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_STATUS_SEVERITY = {Status.PASS: 0, Status.REVIEW: 1, Status.EXCLUDED: 2}
_CONFIDENCE_RANK = {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}


def worst_status(statuses: Iterable[Status]) -> Status:
    """Most severe status; PASS for an empty input."""
    return max(statuses, key=lambda s: s.severity, default=Status.PASS)


def lowest_confidence(confidences: Iterable[Confidence]) -> Confidence:
    """Least confident value; HIGH for an empty input."""
    return min(confidences, key=lambda c: c.rank, default=Confidence.HIGH)


def new_audit_id() -> str:
    return f"aud_{uuid.uuid4().hex[:16]}"


class CategoryStatus(CamelModel):
    """Outcome for one evidence group."""

    category: str
    status: Status = Status.PASS
    score: int = 0
    evidence_texts: list[str] = Field(default_factory=list)


class PolicyStatus(CamelModel):
    """Outcome for one policy."""

    overall: Status = Status.PASS
    categories: list[CategoryStatus] = Field(default_factory=list)


class PolicyStatuses(CamelModel):
    """Status for each of the four policies."""

    bds: PolicyStatus = Field(default_factory=PolicyStatus)
    defense: PolicyStatus = Field(default_factory=PolicyStatus)
    surveillance: PolicyStatus = Field(default_factory=PolicyStatus)
    shariah: PolicyStatus = Field(default_factory=PolicyStatus)

    def get(self, policy: Policy) -> PolicyStatus:
        return getattr(self, policy.key)


class Citation(CamelModel):
    """A source reference shown next to a result."""

    label: str
    url: str


class ScreeningResult(CamelModel):
    """One verdict for one screened instrument."""

    symbol: str
    instrument_name: str
    statuses: PolicyStatuses = Field(default_factory=PolicyStatuses)
    final_verdict: Verdict = Verdict.PASS
    reasons: list[str] = Field(default_factory=list)
    confidence: Confidence = Confidence.HIGH
    sources: list[Citation] = Field(default_factory=list)
    audit_id: str = Field(default_factory=new_audit_id)
    as_of: datetime = Field(default_factory=utcnow)


class BasketExposure(CamelModel):
    """Weight rollup behind a basket verdict."""

    excluded_weight: float = 0.0
    review_weight: float = 0.0
    holdings_screened: int = 0
    holdings_skipped: int = 0


class BasketVerdict(ScreeningResult):
    """A look-through verdict for a fund or ETF."""

    exposure: BasketExposure = Field(default_factory=BasketExposure)


class ScreenResponse(CamelModel):
    """Ordered results for one screening request."""

    request_id: str
    as_of: datetime = Field(default_factory=utcnow)
    results: list[BasketVerdict | ScreeningResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def get(self, symbol: str) -> Optional[ScreeningResult]:
        """Find a result by symbol."""
        for result in self.results:
            if result.symbol == symbol:
                return result
        return None
