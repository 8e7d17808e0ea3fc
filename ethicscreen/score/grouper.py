"""Partition an instrument's evidence by policy and sub-category."""

from typing import Iterable, Optional

from ethicscreen.models import BdsCategory, Evidence, Policy

# Key used for policies that have no sub-categories
IMPLICIT_CATEGORY = "general"


def category_key(item: Evidence, policy: Policy) -> str:
    """Category an evidence item is scored under for the given policy."""
    if policy is Policy.BDS:
        return (item.sub_category or BdsCategory.OTHER).value
    return IMPLICIT_CATEGORY


def group_evidence(
    evidence: Iterable[Evidence],
    policy: Policy,
    categories: Optional[set[str]] = None,
) -> dict[str, list[Evidence]]:
    """
    Group a policy's evidence by category.

    Args:
        evidence: All evidence attached to one instrument
        policy: The policy being screened
        categories: Optional set of category keys in scope. Groups outside
            the set are dropped before scoring.

    Returns:
        Category key -> evidence in original order. Keys appear in order of
        first occurrence.
    """
    groups: dict[str, list[Evidence]] = {}

    for item in evidence:
        if item.policy is not policy:
            continue

        key = category_key(item, policy)
        if categories and key not in categories:
            continue

        groups.setdefault(key, []).append(item)

    return groups
