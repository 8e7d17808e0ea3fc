"""Screening engine: grouping, scoring, confidence, verdicts and look-through."""

from .grouper import group_evidence, IMPLICIT_CATEGORY
from .category import CategoryScorer
from .confidence import ConfidenceEstimator
from .policies import PolicyScreener, PolicyOutcome
from .combiner import combine_verdicts, combine_confidence, collect_reasons, POLICY_ORDER
from .engine import ScreeningEngine
from .lookthrough import LookThroughAggregator, HoldingOutcome

__all__ = [
    "group_evidence",
    "IMPLICIT_CATEGORY",
    "CategoryScorer",
    "ConfidenceEstimator",
    "PolicyScreener",
    "PolicyOutcome",
    "combine_verdicts",
    "combine_confidence",
    "collect_reasons",
    "POLICY_ORDER",
    "ScreeningEngine",
    "LookThroughAggregator",
    "HoldingOutcome",
]
