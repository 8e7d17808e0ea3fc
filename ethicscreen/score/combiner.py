"""Merge per-policy outcomes into one verdict."""

from typing import Iterable

from ethicscreen.models import Confidence, Policy, Status, Verdict, lowest_confidence, worst_status

# Fixed order for reasons and status maps
POLICY_ORDER = (Policy.BDS, Policy.DEFENSE, Policy.SURVEILLANCE, Policy.SHARIAH)


def combine_verdicts(statuses: Iterable[Status]) -> Verdict:
    """
    Worst status wins: excluded > review > pass.

    Associative and commutative, so policies can be combined in any order.
    """
    return Verdict.from_status(worst_status(statuses))


def combine_confidence(confidences: Iterable[Confidence]) -> Confidence:
    """The result is only as confident as its least confident policy."""
    return lowest_confidence(confidences)


def collect_reasons(outcomes: dict) -> list[str]:
    """
    Concatenate reasons in policy order.

    Each policy contributes its category evidence texts, then its own
    reasons. Duplicate strings are kept for the audit trail.
    """
    reasons: list[str] = []
    for policy in POLICY_ORDER:
        outcome = outcomes.get(policy)
        if outcome is not None:
            reasons.extend(outcome.reasons)
    return reasons
