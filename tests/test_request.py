"""Tests for screen request parsing."""

import pytest

from ethicscreen.models import BdsCategory, InvalidRequestError, Policy, parse_request


class TestParseRequest:
    """Tests for request validation and defaults."""

    def test_defaults(self):
        request = parse_request({"symbols": ["aapl"]})
        assert request.symbols == ["AAPL"]
        assert all(request.filters.is_enabled(p) for p in Policy)
        assert request.filters.bds_categories is None
        assert request.options.lookthrough is True
        assert request.options.max_depth == 2

    def test_camel_case_options(self):
        request = parse_request({"symbols": ["A"], "options": {"maxDepth": 4, "lookthrough": False}})
        assert request.options.max_depth == 4
        assert request.options.lookthrough is False

    def test_bds_categories(self):
        request = parse_request({
            "symbols": ["A"],
            "filters": {"bds": {"categories": ["settlement_enterprise", "other_bds_activities"]}},
        })
        assert request.filters.bds.categories == [BdsCategory.SETTLEMENT_ENTERPRISE, BdsCategory.OTHER]
        assert request.filters.bds_categories == {"settlement_enterprise", "other_bds_activities"}

    def test_disabled_policies(self):
        request = parse_request({"symbols": ["A"], "filters": {"bds": {"enabled": False}, "defense": False}})
        assert not request.filters.is_enabled(Policy.BDS)
        assert not request.filters.is_enabled(Policy.DEFENSE)
        assert request.filters.is_enabled(Policy.SURVEILLANCE)

    def test_errors_are_reported(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_request({"symbols": ["A", " "], "options": {"maxDepth": 6}})
        assert len(exc_info.value.errors) == 2

    def test_not_a_mapping(self):
        with pytest.raises(InvalidRequestError):
            parse_request(["AAPL"])
