"""Instrument and evidence records consumed by the screening engine."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .base import UtcDatetime


class Policy(str, Enum):
    """Independent screening dimensions."""

    BDS = "BDS"
    DEFENSE = "DEFENSE"
    SURVEILLANCE = "SURVEILLANCE"
    SHARIAH = "SHARIAH"

    @property
    def key(self) -> str:
        """Lower-case key used in result status maps."""
        return self.value.lower()


class Strength(str, Enum):
    """How strongly a piece of evidence ties the instrument to a violation."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class BdsCategory(str, Enum):
    """Sub-categories of boycott-related exposure."""

    ECONOMIC_EXPLOITATION = "economic_exploitation"
    EXPLOITATION_OCCUPIED_RESOURCES = "exploitation_occupied_resources"
    SETTLEMENT_ENTERPRISE = "settlement_enterprise"
    CONSTRUCTION_OCCUPIED_LAND = "israeli_construction_occupied_land"
    SERVICES_TO_SETTLEMENTS = "services_to_settlements"
    OTHER = "other_bds_activities"


class Source(BaseModel):
    """Citation for a piece of evidence. Never used in scoring."""

    url: str = Field(description="Canonical URL")
    title: Optional[str] = None
    domain: Optional[str] = None
    publisher: Optional[str] = None


class Evidence(BaseModel):
    """One documented observation linking an instrument to a policy."""

    id: Optional[str] = None
    policy: Policy
    sub_category: Optional[BdsCategory] = Field(
        default=None,
        description="BDS sub-category; ignored for other policies",
    )
    subtype: Optional[str] = Field(
        default=None,
        description="Tag subtype, e.g. 'facial_recognition' or 'haram_alcohol'",
    )
    strength: Strength
    notes: str = ""
    observed_at: Optional[UtcDatetime] = None
    source: Optional[Source] = None


class DefenseContract(BaseModel):
    """A government contract award."""

    agency: str
    amount_usd: float = Field(ge=0.0)
    psc: Optional[str] = Field(default=None, description="Product/service code")
    period_end: Optional[UtcDatetime] = None
    source: Optional[Source] = None


class ArmsRank(BaseModel):
    """A SIPRI Top-100 arms producer ranking row."""

    year: int
    sipri_rank: Optional[int] = None
    source: Optional[Source] = None


class Financials(BaseModel):
    """Balance-sheet figures used by the religious-compliance ratios."""

    market_cap: float = 0.0
    debt: float = 0.0
    cash_securities: float = 0.0
    receivables: float = 0.0
    period: Optional[UtcDatetime] = None
    is_estimated: bool = False


class Instrument(BaseModel):
    """A screenable company with everything attached to it."""

    symbol: str
    name: str
    active: bool = True
    evidence: list[Evidence] = Field(default_factory=list)
    contracts: list[DefenseContract] = Field(default_factory=list)
    arms_ranks: list[ArmsRank] = Field(default_factory=list)
    financials: Optional[Financials] = None


class Holding(BaseModel):
    """A weighted position inside a basket."""

    symbol: str
    name: Optional[str] = None
    weight: float = Field(ge=0.0, le=100.0, description="Percent of the basket")


class Basket(BaseModel):
    """A fund or ETF screened by looking through its holdings."""

    symbol: str
    name: str
    provider: Optional[str] = None
    holdings_url: Optional[str] = None
    as_of: Optional[UtcDatetime] = None
    holdings: list[Holding] = Field(default_factory=list)

