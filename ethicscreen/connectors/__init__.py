"""Data source, result sink and financial lookup connectors."""

from .base import InstrumentSource, ResultSink, FinancialDataConnector
from .database import DatabaseSource
from .financials import YahooFinanceConnector
from .mock import MockSource

__all__ = [
    "InstrumentSource",
    "ResultSink",
    "FinancialDataConnector",
    "DatabaseSource",
    "YahooFinanceConnector",
    "MockSource",
]
