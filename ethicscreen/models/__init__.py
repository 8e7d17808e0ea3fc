"""Data models for EthicScreen."""

from .evidence import (
    Policy,
    Strength,
    BdsCategory,
    Source,
    Evidence,
    DefenseContract,
    ArmsRank,
    Financials,
    Instrument,
    Holding,
    Basket,
)
from .request import (
    BdsFilter,
    ScreenFilters,
    ScreenOptions,
    ScreenRequest,
    InvalidRequestError,
    parse_request,
)
from .result import (
    Status,
    Verdict,
    Confidence,
    CategoryStatus,
    PolicyStatus,
    PolicyStatuses,
    Citation,
    ScreeningResult,
    BasketExposure,
    BasketVerdict,
    ScreenResponse,
    worst_status,
    lowest_confidence,
)
from .rules import ScreeningConfig, CategoryThreshold, DEFAULT_CONFIG

__all__ = [
    "Policy",
    "Strength",
    "BdsCategory",
    "Source",
    "Evidence",
    "DefenseContract",
    "ArmsRank",
    "Financials",
    "Instrument",
    "Holding",
    "Basket",
    "BdsFilter",
    "ScreenFilters",
    "ScreenOptions",
    "ScreenRequest",
    "InvalidRequestError",
    "parse_request",
    "Status",
    "Verdict",
    "Confidence",
    "CategoryStatus",
    "PolicyStatus",
    "PolicyStatuses",
    "Citation",
    "ScreeningResult",
    "BasketExposure",
    "BasketVerdict",
    "ScreenResponse",
    "worst_status",
    "lowest_confidence",
    "ScreeningConfig",
    "CategoryThreshold",
    "DEFAULT_CONFIG",
]
