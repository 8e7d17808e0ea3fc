"""Screening rule configuration.

Every constant the engine scores with lives here, in one immutable object
that is passed explicitly into the scorer, the confidence estimator, the
policy screens and the look-through aggregator. Tests build their own
instance instead of patching module state.
"""

from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .evidence import BdsCategory, Strength


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class CategoryThreshold(_FrozenModel):
    """Score thresholds for one category."""

    exclude_at: int = Field(description="Score at or above which the category is excluded")
    review_at: int = Field(description="Score at or above which the category needs review")


class DefenseRules(_FrozenModel):
    """Contract and arms-ranking limits for the defense policy."""

    sipri_top_rank: int = 100
    major_contract_usd: float = 10_000_000
    minor_contract_usd: float = 1_000_000
    agency_keywords: tuple[str, ...] = ("defense", "dod")
    weapons_psc_prefix: str = "10"
    major_detail_count: int = 3
    minor_detail_count: int = 2


class SurveillanceRules(_FrozenModel):
    """Evidence subtypes treated as invasive surveillance technology."""

    invasive_subtypes: tuple[str, ...] = (
        "facial_recognition",
        "spyware",
        "phone_extraction",
    )


class ShariahRules(_FrozenModel):
    """Financial ratio caps (percent of market cap) and business screen marker."""

    max_debt_ratio: float = 33.0
    max_cash_ratio: float = 33.0
    max_receivables_ratio: float = 49.0
    prohibited_marker: str = "haram"


class FinancialEstimates(_FrozenModel):
    """Conservative figures substituted when financial data cannot be fetched."""

    market_cap: float = 10_000_000_000
    debt_ratio: float = 0.20
    cash_ratio: float = 0.10
    receivables_ratio: float = 0.05


class BasketRules(_FrozenModel):
    """Weight thresholds (percent) for look-through verdicts."""

    exclude_at_excluded_weight: float = 15.0
    review_at_excluded_weight: float = 5.0
    review_at_review_weight: float = 10.0
    named_offenders: int = 3


DEFAULT_CATEGORY_THRESHOLDS: dict[BdsCategory, CategoryThreshold] = {
    BdsCategory.SETTLEMENT_ENTERPRISE: CategoryThreshold(exclude_at=8, review_at=4),
    BdsCategory.CONSTRUCTION_OCCUPIED_LAND: CategoryThreshold(exclude_at=8, review_at=4),
    BdsCategory.ECONOMIC_EXPLOITATION: CategoryThreshold(exclude_at=6, review_at=3),
    BdsCategory.EXPLOITATION_OCCUPIED_RESOURCES: CategoryThreshold(exclude_at=6, review_at=3),
    BdsCategory.SERVICES_TO_SETTLEMENTS: CategoryThreshold(exclude_at=5, review_at=2),
    BdsCategory.OTHER: CategoryThreshold(exclude_at=7, review_at=3),
}


class ScreeningConfig(_FrozenModel):
    """Complete rule set for one screening run."""

    # Category scoring
    strength_points: Mapping[Strength, int] = Field(
        default_factory=lambda: {Strength.HIGH: 10, Strength.MEDIUM: 6, Strength.LOW: 2}
    )
    recency_bonus: int = 2
    recency_window_days: int = 730
    review_item_count: int = 3
    default_threshold: CategoryThreshold = CategoryThreshold(exclude_at=7, review_at=3)
    category_thresholds: Mapping[str, CategoryThreshold] = Field(
        default_factory=lambda: {c.value: t for c, t in DEFAULT_CATEGORY_THRESHOLDS.items()}
    )

    # Confidence bands
    confidence_high_at: int = 15
    confidence_medium_at: int = 8

    # Policy rules
    defense: DefenseRules = DefenseRules()
    surveillance: SurveillanceRules = SurveillanceRules()
    shariah: ShariahRules = ShariahRules()
    estimates: FinancialEstimates = FinancialEstimates()
    basket: BasketRules = BasketRules()

    @model_validator(mode="after")
    def freeze_tables(self) -> "ScreeningConfig":
        """Lookup tables are read-only so a shared config cannot drift."""
        object.__setattr__(self, "strength_points", MappingProxyType(dict(self.strength_points)))
        object.__setattr__(self, "category_thresholds", MappingProxyType(dict(self.category_thresholds)))
        return self

    def threshold_for(self, category: str) -> CategoryThreshold:
        """Get thresholds for a category, returning the default if not specified."""
        return self.category_thresholds.get(category, self.default_threshold)

    def points_for(self, strength: Strength) -> int:
        return self.strength_points.get(strength, 0)


DEFAULT_CONFIG = ScreeningConfig()
