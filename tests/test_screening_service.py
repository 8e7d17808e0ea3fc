"""Tests for the async screening service."""

import asyncio
from datetime import timedelta
from typing import Optional

import pytest

from ethicscreen.connectors import FinancialDataConnector, MockSource
from ethicscreen.models import (
    Basket,
    BdsCategory,
    BasketVerdict,
    Confidence,
    Evidence,
    Financials,
    Holding,
    Instrument,
    InvalidRequestError,
    Policy,
    Status,
    Strength,
    Verdict,
)
from ethicscreen.models.base import utcnow
from ethicscreen.screening import LOW_CONFIDENCE_WARNING, ScreeningService


def make_financials(**kwargs) -> Financials:
    """Create compliant financials with defaults."""
    defaults = {
        "market_cap": 1_000_000_000,
        "debt": 100_000_000,
        "cash_securities": 100_000_000,
        "receivables": 100_000_000,
    }
    defaults.update(kwargs)
    return Financials(**defaults)


def make_instrument(symbol: str, **kwargs) -> Instrument:
    """Create test instrument with defaults."""
    defaults = {
        "symbol": symbol,
        "name": f"{symbol} Corp",
        "financials": make_financials(),
    }
    defaults.update(kwargs)
    return Instrument(**defaults)


def make_settlement_evidence() -> Evidence:
    return Evidence(
        policy=Policy.BDS,
        sub_category=BdsCategory.SETTLEMENT_ENTERPRISE,
        strength=Strength.HIGH,
        notes="Settlement factory",
        observed_at=utcnow() - timedelta(days=10),
    )


def make_service(instruments=None, baskets=None, **kwargs) -> ScreeningService:
    """Service over an in-memory source."""
    source = MockSource(instruments=instruments or [], baskets=baskets or [])
    return ScreeningService(source=source, sink=source, **kwargs)


class DelayedSource(MockSource):
    """Resolves earlier symbols more slowly than later ones."""

    def __init__(self, delays: dict[str, float], **kwargs):
        super().__init__(**kwargs)
        self.delays = delays

    async def get_instrument(self, symbol: str) -> Optional[Instrument]:
        await asyncio.sleep(self.delays.get(symbol, 0))
        return await super().get_instrument(symbol)


class BrokenSource(MockSource):
    """Fails on one symbol."""

    def __init__(self, broken: str, **kwargs):
        super().__init__(**kwargs)
        self.broken = broken

    async def get_instrument(self, symbol: str) -> Optional[Instrument]:
        if symbol == self.broken:
            raise RuntimeError("store unavailable")
        return await super().get_instrument(symbol)


class SlowBrokenSource(BrokenSource):
    """Fails on one symbol at once; every other symbol resolves after a delay."""

    def __init__(self, broken: str, delay: float, **kwargs):
        super().__init__(broken, **kwargs)
        self.delay = delay
        self.finished: list[str] = []

    async def get_instrument(self, symbol: str) -> Optional[Instrument]:
        if symbol == self.broken:
            raise RuntimeError("store unavailable")
        await asyncio.sleep(self.delay)
        self.finished.append(symbol)
        return await MockSource.get_instrument(self, symbol)


class SlowFinancials(FinancialDataConnector):
    """Records which fetches ran to completion."""

    name = "slow"

    def __init__(self, delay: float):
        self.delay = delay
        self.finished: list[str] = []

    async def fetch(self, symbol: str) -> Optional[Financials]:
        await asyncio.sleep(self.delay)
        self.finished.append(symbol)
        return make_financials(is_estimated=True)


class CountingFinancials(FinancialDataConnector):
    """Records how often each symbol is fetched."""

    name = "counting"

    def __init__(self, financials: Optional[Financials] = None):
        self.calls: dict[str, int] = {}
        self.financials = financials or make_financials(is_estimated=True)

    async def fetch(self, symbol: str) -> Optional[Financials]:
        self.calls[symbol] = self.calls.get(symbol, 0) + 1
        await asyncio.sleep(0.01)
        return self.financials


class TestScreen:
    """Tests for top-level screening."""

    def test_clean_instrument_passes_with_high_confidence(self):
        service = make_service([make_instrument("CLEAN")])
        response = asyncio.run(service.screen({"symbols": ["CLEAN"]}))
        result = response.results[0]
        assert result.final_verdict is Verdict.PASS
        assert result.confidence is Confidence.HIGH
        assert result.reasons == []
        assert response.warnings == []

    def test_output_order_matches_input_order(self):
        instruments = [make_instrument(s) for s in ("AAA", "BBB", "CCC")]
        source = DelayedSource({"AAA": 0.05, "BBB": 0.02}, instruments=instruments, baskets=[])
        service = ScreeningService(source=source, persist=False)
        response = asyncio.run(service.screen({"symbols": ["AAA", "BBB", "CCC"]}))
        assert [r.symbol for r in response.results] == ["AAA", "BBB", "CCC"]

    def test_warnings_follow_request_order(self):
        source = DelayedSource({"AAA": 0.05, "BBB": 0.02}, instruments=[], baskets=[])
        service = ScreeningService(source=source, persist=False)
        response = asyncio.run(service.screen({"symbols": ["AAA", "BBB", "CCC"]}))
        assert response.warnings == [
            "Symbol AAA not found",
            "Symbol BBB not found",
            "Symbol CCC not found",
            LOW_CONFIDENCE_WARNING,
        ]

    def test_symbols_are_normalized(self):
        service = make_service([make_instrument("CLEAN")])
        response = asyncio.run(service.screen({"symbols": ["  clean "]}))
        assert response.results[0].symbol == "CLEAN"
        assert response.results[0].instrument_name == "CLEAN Corp"

    def test_not_found_symbol(self):
        service = make_service()
        response = asyncio.run(service.screen({"symbols": ["NOPE"]}))
        result = response.results[0]
        assert result.final_verdict is Verdict.PASS
        assert result.confidence is Confidence.LOW
        assert result.reasons == ["Instrument NOPE not found"]
        assert "Symbol NOPE not found" in response.warnings
        assert LOW_CONFIDENCE_WARNING in response.warnings

    def test_missing_financials_need_review(self):
        service = make_service([make_instrument("NOFIN", financials=None)])
        response = asyncio.run(service.screen({"symbols": ["NOFIN"]}))
        result = response.results[0]
        assert result.statuses.shariah.overall is Status.REVIEW
        assert result.confidence is Confidence.LOW
        assert "Insufficient financial data" in result.reasons

    def test_disabled_policies_are_not_screened(self):
        service = make_service([make_instrument("NOFIN", financials=None, evidence=[make_settlement_evidence()])])
        payload = {
            "symbols": ["NOFIN"],
            "filters": {"bds": {"enabled": False}, "shariah": False},
        }
        response = asyncio.run(service.screen(payload))
        assert response.results[0].final_verdict is Verdict.PASS
        assert response.results[0].reasons == []

    def test_bds_category_filter(self):
        instrument = make_instrument("SETL", evidence=[make_settlement_evidence()])
        service = make_service([instrument])
        payload = {
            "symbols": ["SETL"],
            "filters": {"bds": {"categories": ["economic_exploitation"]}},
        }
        response = asyncio.run(service.screen(payload))
        assert response.results[0].final_verdict is Verdict.PASS
        assert response.results[0].statuses.bds.categories == []
        assert response.results[0].reasons == []
        assert response.results[0].sources == []

    def test_bds_category_filter_keeps_only_scoped_reasons(self):
        exploitation = Evidence(
            policy=Policy.BDS,
            sub_category=BdsCategory.ECONOMIC_EXPLOITATION,
            strength=Strength.MEDIUM,
            notes="Quarry on occupied land",
        )
        instrument = make_instrument("SETL", evidence=[make_settlement_evidence(), exploitation])
        service = make_service([instrument])
        payload = {
            "symbols": ["SETL"],
            "filters": {"bds": {"categories": ["economic_exploitation"]}},
        }
        result = asyncio.run(service.screen(payload)).results[0]
        assert result.final_verdict is Verdict.EXCLUDED
        assert result.reasons == result.statuses.bds.categories[0].evidence_texts
        assert result.reasons == ["[Medium] Quarry on occupied land"]
        assert not any("Settlement factory" in reason for reason in result.reasons)

    def test_results_are_saved(self):
        source = MockSource(instruments=[make_instrument("CLEAN")], baskets=[])
        service = ScreeningService(source=source, sink=source, persist=True)
        response = asyncio.run(service.screen({"symbols": ["CLEAN"]}))
        assert source.saved[response.request_id] == response.results
        audit_id = response.results[0].audit_id
        assert service.get_result(audit_id)["symbol"] == "CLEAN"

    def test_results_not_saved_when_disabled(self):
        source = MockSource(instruments=[make_instrument("CLEAN")], baskets=[])
        service = ScreeningService(source=source, sink=source, persist=False)
        asyncio.run(service.screen({"symbols": ["CLEAN"]}))
        assert source.saved == {}

    def test_store_error_aborts_call(self):
        source = BrokenSource("BAD", instruments=[make_instrument("GOOD")], baskets=[])
        service = ScreeningService(source=source, persist=False)
        with pytest.raises(RuntimeError):
            asyncio.run(service.screen({"symbols": ["GOOD", "BAD"]}))

    def test_store_error_cancels_other_symbols(self):
        source = SlowBrokenSource("BAD", delay=0.05, instruments=[make_instrument("SLOW")], baskets=[])
        service = ScreeningService(source=source, persist=False)

        async def scenario():
            with pytest.raises(RuntimeError):
                await service.screen({"symbols": ["SLOW", "BAD"]})
            # Long enough for an orphaned lookup to finish
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert source.finished == []

    def test_store_error_cancels_financial_lookups(self):
        source = BrokenSource("BAD", instruments=[make_instrument("NOFIN", financials=None)], baskets=[])
        financials = SlowFinancials(delay=0.05)
        service = ScreeningService(source=source, financials=financials, persist=False)

        async def scenario():
            with pytest.raises(RuntimeError):
                await service.screen({"symbols": ["NOFIN", "BAD"]})
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert financials.finished == []

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"symbols": []},
            {"symbols": ["  "]},
            {"symbols": ["AAA"], "options": {"maxDepth": 9}},
            {"symbols": ["AAA"], "filters": {"bds": {"categories": ["not_a_category"]}}},
        ],
    )
    def test_malformed_request_is_rejected(self, payload):
        service = make_service([make_instrument("AAA")])
        with pytest.raises(InvalidRequestError):
            asyncio.run(service.screen(payload))


class TestFinancialLookup:
    """Tests for the external financial-data fallback."""

    def test_estimated_financials_used_when_missing(self):
        lookup = CountingFinancials()
        service = make_service([make_instrument("NOFIN", financials=None)], financials=lookup)
        response = asyncio.run(service.screen({"symbols": ["NOFIN"]}))
        result = response.results[0]
        assert result.statuses.shariah.overall is Status.PASS
        assert result.confidence is Confidence.MEDIUM
        assert "Using estimated financial data - results may vary" in result.reasons

    def test_one_lookup_per_symbol_per_call(self):
        lookup = CountingFinancials()
        basket = Basket(
            symbol="FUND",
            name="Fund",
            holdings=[Holding(symbol="NOFIN", weight=100.0)],
        )
        service = make_service([make_instrument("NOFIN", financials=None)], [basket], financials=lookup)
        asyncio.run(service.screen({"symbols": ["NOFIN", "NOFIN", "FUND"]}))
        assert lookup.calls == {"NOFIN": 1}

        asyncio.run(service.screen({"symbols": ["NOFIN"]}))
        assert lookup.calls == {"NOFIN": 2}

    def test_no_lookup_when_stored_or_shariah_disabled(self):
        lookup = CountingFinancials()
        service = make_service(
            [make_instrument("HASFIN"), make_instrument("NOFIN", financials=None)],
            financials=lookup,
        )
        asyncio.run(service.screen({"symbols": ["HASFIN"]}))
        asyncio.run(service.screen({"symbols": ["NOFIN"], "filters": {"shariah": False}}))
        assert lookup.calls == {}


class TestLookThrough:
    """Tests for basket screening through the service."""

    def make_fund_service(self, **kwargs) -> ScreeningService:
        instruments = [
            make_instrument("CLEAN"),
            make_instrument("SETL", evidence=[make_settlement_evidence()]),
        ]
        baskets = [
            Basket(
                symbol="FUND",
                name="Mixed Fund",
                holdings=[
                    Holding(symbol="CLEAN", name="Clean", weight=80.0),
                    Holding(symbol="SETL", name="Settler", weight=20.0),
                ],
            ),
            Basket(
                symbol="OUTER",
                name="Fund of Funds",
                holdings=[
                    Holding(symbol="FUND", name="Mixed Fund", weight=50.0),
                    Holding(symbol="CLEAN", name="Clean", weight=50.0),
                ],
            ),
            Basket(symbol="LOOPA", name="Loop A", holdings=[Holding(symbol="LOOPB", weight=100.0)]),
            Basket(symbol="LOOPB", name="Loop B", holdings=[Holding(symbol="LOOPA", weight=100.0)]),
            Basket(
                symbol="GHOSTY",
                name="Partly Unknown",
                holdings=[
                    Holding(symbol="CLEAN", weight=90.0),
                    Holding(symbol="GHOST", weight=10.0),
                ],
            ),
        ]
        return make_service(instruments, baskets, **kwargs)

    def test_basket_is_looked_through(self):
        service = self.make_fund_service()
        response = asyncio.run(service.screen({"symbols": ["FUND"]}))
        result = response.results[0]
        assert isinstance(result, BasketVerdict)
        assert result.final_verdict is Verdict.EXCLUDED
        assert result.exposure.excluded_weight == 20.0
        assert "Settler (20.0%)" in result.reasons

    def test_lookthrough_disabled(self):
        service = self.make_fund_service()
        response = asyncio.run(service.screen({"symbols": ["FUND"], "options": {"lookthrough": False}}))
        assert response.results[0].reasons == ["Instrument FUND not found"]

    def test_nested_basket_within_depth(self):
        service = self.make_fund_service()
        response = asyncio.run(service.screen({"symbols": ["OUTER"], "options": {"maxDepth": 2}}))
        result = response.results[0]
        # FUND is excluded as a whole, carrying 50% of OUTER
        assert result.final_verdict is Verdict.EXCLUDED
        assert result.exposure.excluded_weight == 50.0

    def test_nested_basket_beyond_depth(self):
        service = self.make_fund_service()
        response = asyncio.run(service.screen({"symbols": ["OUTER"], "options": {"maxDepth": 1}}))
        result = response.results[0]
        assert result.final_verdict is Verdict.REVIEW
        assert result.exposure.review_weight == 50.0

    def test_cycle_is_cut(self):
        service = self.make_fund_service()
        response = asyncio.run(service.screen({"symbols": ["LOOPA"], "options": {"maxDepth": 5}}))
        result = response.results[0]
        assert result.final_verdict is Verdict.REVIEW

    def test_unresolvable_holding_is_skipped(self):
        service = self.make_fund_service()
        response = asyncio.run(service.screen({"symbols": ["GHOSTY"]}))
        result = response.results[0]
        assert result.final_verdict is Verdict.PASS
        assert result.confidence is Confidence.MEDIUM
        assert result.exposure.holdings_skipped == 1
        assert result.exposure.holdings_screened == 1
        assert any("GHOST" in w for w in response.warnings)

    def test_failing_holding_is_skipped(self):
        source = BrokenSource(
            "BAD",
            instruments=[make_instrument("CLEAN")],
            baskets=[Basket(
                symbol="FUND",
                name="Fund",
                holdings=[Holding(symbol="CLEAN", weight=60.0), Holding(symbol="BAD", weight=40.0)],
            )],
        )
        service = ScreeningService(source=source, persist=False)
        response = asyncio.run(service.screen({"symbols": ["FUND"]}))
        result = response.results[0]
        assert result.exposure.holdings_skipped == 1
        assert result.exposure.excluded_weight == 0.0
        assert any("BAD" in w for w in response.warnings)

    def test_holding_warnings_follow_holding_order(self):
        source = DelayedSource(
            {"GONEA": 0.05, "GONEB": 0.02},
            instruments=[],
            baskets=[Basket(
                symbol="FUND",
                name="Fund",
                holdings=[
                    Holding(symbol="GONEA", weight=50.0),
                    Holding(symbol="GONEB", weight=30.0),
                    Holding(symbol="GONEC", weight=20.0),
                ],
            )],
        )
        service = ScreeningService(source=source, persist=False)
        response = asyncio.run(service.screen({"symbols": ["FUND"]}))
        assert [w for w in response.warnings if w != LOW_CONFIDENCE_WARNING] == [
            "Holding GONEA in FUND not found; skipped",
            "Holding GONEB in FUND not found; skipped",
            "Holding GONEC in FUND not found; skipped",
        ]
