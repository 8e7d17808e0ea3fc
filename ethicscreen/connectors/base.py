"""Abstract interfaces for the data source and result sink."""

from abc import ABC, abstractmethod
from typing import Optional

from ethicscreen.models import Basket, Financials, Instrument, ScreeningResult


class InstrumentSource(ABC):
    """Data source that yields instruments with their evidence attached."""

    name: str = "base"

    @abstractmethod
    async def get_instrument(self, symbol: str) -> Optional[Instrument]:
        """
        Resolve an active instrument by symbol.

        Args:
            symbol: Upper-cased ticker-like symbol

        Returns:
            The instrument with evidence, contracts, rankings and latest
            financials attached, or None when it cannot be resolved
        """
        pass

    @abstractmethod
    async def get_basket(self, symbol: str) -> Optional[Basket]:
        """
        Resolve a fund or ETF with its weighted holdings.

        Args:
            symbol: Upper-cased basket symbol

        Returns:
            The basket, or None when the symbol is not a basket
        """
        pass


class ResultSink(ABC):
    """Destination for the screening audit trail."""

    @abstractmethod
    async def save_results(
        self,
        request_id: str,
        results: list[ScreeningResult],
    ) -> None:
        """Persist results for audit. Stored records are never mutated."""
        pass


class FinancialDataConnector(ABC):
    """External lookup used when stored financial ratios are absent."""

    name: str = "base"

    @abstractmethod
    async def fetch(self, symbol: str) -> Optional[Financials]:
        """
        Fetch or estimate financials for a symbol.

        Implementations do not retry and should degrade to conservative
        estimates rather than raise.
        """
        pass
