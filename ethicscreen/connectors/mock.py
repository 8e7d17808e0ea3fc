"""Mock source for testing and demos."""

from datetime import timedelta
from typing import Optional

from ethicscreen.models import (
    ArmsRank,
    Basket,
    BdsCategory,
    DefenseContract,
    Evidence,
    Financials,
    Holding,
    Instrument,
    Policy,
    ScreeningResult,
    Source,
    Strength,
)
from ethicscreen.models.base import utcnow
from .base import InstrumentSource, ResultSink


class MockSource(InstrumentSource, ResultSink):
    """In-memory source that returns predefined instruments and baskets."""

    name = "mock"

    def __init__(
        self,
        instruments: Optional[list[Instrument]] = None,
        baskets: Optional[list[Basket]] = None,
    ):
        if instruments is None:
            instruments = self._default_instruments()
        if baskets is None:
            baskets = self._default_baskets()
        self._instruments = {i.symbol.upper(): i for i in instruments}
        self._baskets = {b.symbol.upper(): b for b in baskets}
        self.saved: dict[str, list[ScreeningResult]] = {}

    async def get_instrument(self, symbol: str) -> Optional[Instrument]:
        instrument = self._instruments.get(symbol.upper())
        if instrument is None:
            # Fall back to an exact company-name match
            for candidate in self._instruments.values():
                if candidate.name.lower() == symbol.lower():
                    instrument = candidate
                    break
        if instrument is None or not instrument.active:
            return None
        return instrument

    async def get_basket(self, symbol: str) -> Optional[Basket]:
        return self._baskets.get(symbol.upper())

    async def save_results(self, request_id: str, results: list[ScreeningResult]) -> None:
        self.saved[request_id] = list(results)

    def get_result(self, audit_id: str) -> Optional[dict]:
        for results in self.saved.values():
            for result in results:
                if result.audit_id == audit_id:
                    return result.model_dump(mode="json", by_alias=True)
        return None

    def _default_instruments(self) -> list[Instrument]:
        """Generate default sample instruments."""
        now = utcnow()
        who_profits = Source(
            url="https://www.whoprofits.org/companies/company/1001",
            title="Company profile",
            domain="whoprofits.org",
            publisher="Who Profits",
        )
        return [
            Instrument(
                symbol="CLEAN",
                name="Clean Energy Co",
                financials=Financials(
                    market_cap=50_000_000_000,
                    debt=5_000_000_000,
                    cash_securities=4_000_000_000,
                    receivables=3_000_000_000,
                    period=now - timedelta(days=90),
                ),
            ),
            Instrument(
                symbol="SETL",
                name="Settlement Builders Ltd",
                evidence=[
                    Evidence(
                        id="mock-1",
                        policy=Policy.BDS,
                        sub_category=BdsCategory.SETTLEMENT_ENTERPRISE,
                        strength=Strength.HIGH,
                        notes="Operates a factory in an industrial zone inside a settlement",
                        observed_at=now - timedelta(days=200),
                        source=who_profits,
                    ),
                    Evidence(
                        id="mock-2",
                        policy=Policy.BDS,
                        sub_category=BdsCategory.SERVICES_TO_SETTLEMENTS,
                        strength=Strength.LOW,
                        notes="Listed as a supplier to a regional council",
                        observed_at=now - timedelta(days=1500),
                        source=who_profits,
                    ),
                ],
                financials=Financials(
                    market_cap=2_000_000_000,
                    debt=400_000_000,
                    cash_securities=100_000_000,
                    receivables=150_000_000,
                ),
            ),
            Instrument(
                symbol="ARMS",
                name="Aerospace Systems Corp",
                contracts=[
                    DefenseContract(
                        agency="Department of Defense",
                        amount_usd=45_000_000,
                        psc="1010",
                        period_end=now - timedelta(days=120),
                        source=Source(
                            url="https://www.usaspending.gov/award/CONT_AWD_0001",
                            title="Contract award",
                            domain="usaspending.gov",
                            publisher="USAspending",
                        ),
                    ),
                ],
                arms_ranks=[
                    ArmsRank(
                        year=now.year - 1,
                        sipri_rank=42,
                        source=Source(
                            url="https://www.sipri.org/databases/armsindustry",
                            title="SIPRI Arms Industry Database",
                            domain="sipri.org",
                            publisher="SIPRI",
                        ),
                    ),
                ],
                financials=Financials(
                    market_cap=80_000_000_000,
                    debt=20_000_000_000,
                    cash_securities=5_000_000_000,
                    receivables=9_000_000_000,
                ),
            ),
            Instrument(
                symbol="WATCH",
                name="Watchful Analytics",
                evidence=[
                    Evidence(
                        id="mock-3",
                        policy=Policy.SURVEILLANCE,
                        subtype="facial_recognition",
                        strength=Strength.MEDIUM,
                        notes="Supplies facial recognition to checkpoint operators",
                        observed_at=now - timedelta(days=60),
                    ),
                ],
                financials=Financials(
                    market_cap=3_000_000_000,
                    debt=1_500_000_000,
                    cash_securities=200_000_000,
                    receivables=300_000_000,
                ),
            ),
        ]

    def _default_baskets(self) -> list[Basket]:
        """Generate a default sample fund."""
        return [
            Basket(
                symbol="MIXD",
                name="Mixed Markets ETF",
                provider="Example Funds",
                holdings_url="https://example.com/funds/mixd/holdings.csv",
                as_of=utcnow() - timedelta(days=1),
                holdings=[
                    Holding(symbol="CLEAN", name="Clean Energy Co", weight=60.0),
                    Holding(symbol="SETL", name="Settlement Builders Ltd", weight=25.0),
                    Holding(symbol="WATCH", name="Watchful Analytics", weight=15.0),
                ],
            ),
        ]
