"""Tests for verdict combination."""

import itertools

import pytest

from ethicscreen.models import Confidence, Policy, PolicyStatus, Status, Verdict
from ethicscreen.score.combiner import collect_reasons, combine_confidence, combine_verdicts
from ethicscreen.score.policies import PolicyOutcome


class TestCombineVerdicts:
    """Tests for the worst-status rule."""

    @pytest.mark.parametrize(
        "statuses,expected",
        [
            ([], Verdict.PASS),
            ([Status.PASS, Status.PASS], Verdict.PASS),
            ([Status.PASS, Status.REVIEW], Verdict.REVIEW),
            ([Status.REVIEW, Status.EXCLUDED, Status.PASS], Verdict.EXCLUDED),
        ],
    )
    def test_worst_status_wins(self, statuses, expected):
        assert combine_verdicts(statuses) is expected

    def test_order_does_not_matter(self):
        statuses = [Status.PASS, Status.REVIEW, Status.EXCLUDED, Status.PASS]
        verdicts = {combine_verdicts(p) for p in itertools.permutations(statuses)}
        assert verdicts == {Verdict.EXCLUDED}

    def test_associative(self):
        a, b, c = Status.REVIEW, Status.PASS, Status.EXCLUDED
        left = combine_verdicts([combine_verdicts([a, b]).to_status(), c])
        right = combine_verdicts([a, combine_verdicts([b, c]).to_status()])
        assert left is right


class TestCombineConfidence:
    """Tests for confidence combination."""

    def test_lowest_wins(self):
        assert combine_confidence([Confidence.HIGH, Confidence.LOW, Confidence.MEDIUM]) is Confidence.LOW
        assert combine_confidence([Confidence.HIGH, Confidence.MEDIUM]) is Confidence.MEDIUM

    def test_no_policies_is_high(self):
        assert combine_confidence([]) is Confidence.HIGH


class TestCollectReasons:
    """Tests for reason ordering."""

    def test_policy_order_regardless_of_insertion(self):
        outcomes = {
            Policy.SHARIAH: PolicyOutcome(Policy.SHARIAH, PolicyStatus(), policy_reasons=["shariah"]),
            Policy.BDS: PolicyOutcome(Policy.BDS, PolicyStatus(), policy_reasons=["bds"]),
            Policy.DEFENSE: PolicyOutcome(Policy.DEFENSE, PolicyStatus(), policy_reasons=["defense"]),
        }
        assert collect_reasons(outcomes) == ["bds", "defense", "shariah"]

    def test_duplicates_are_kept(self):
        outcomes = {
            Policy.BDS: PolicyOutcome(Policy.BDS, PolicyStatus(), policy_reasons=["same", "same"]),
        }
        assert collect_reasons(outcomes) == ["same", "same"]
