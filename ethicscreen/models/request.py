"""Screen request schema."""

from typing import Any, Optional

from pydantic import Field, ValidationError, field_validator

from .base import CamelModel
from .evidence import BdsCategory, Policy


class InvalidRequestError(ValueError):
    """Raised when a screen request is malformed. No scoring has happened."""

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        self.errors = errors or []
        super().__init__(message)


class BdsFilter(CamelModel):
    """Boycott-exposure policy switch and category scope."""

    enabled: bool = True
    categories: Optional[list[BdsCategory]] = Field(
        default=None,
        description="Restrict scoring to these categories; all when empty",
    )


class ScreenFilters(CamelModel):
    """Which policies to screen."""

    bds: BdsFilter = Field(default_factory=BdsFilter)
    defense: bool = True
    surveillance: bool = True
    shariah: bool = True

    def is_enabled(self, policy: Policy) -> bool:
        if policy is Policy.BDS:
            return self.bds.enabled
        return getattr(self, policy.key)

    @property
    def bds_categories(self) -> Optional[set[str]]:
        """Requested BDS category keys, or None for no restriction."""
        if not self.bds.categories:
            return None
        return {c.value for c in self.bds.categories}


class ScreenOptions(CamelModel):
    """Look-through behaviour."""

    lookthrough: bool = True
    max_depth: int = Field(default=2, ge=1, le=5)


class ScreenRequest(CamelModel):
    """A request to screen one or more symbols."""

    symbols: list[str] = Field(min_length=1)
    filters: ScreenFilters = Field(default_factory=ScreenFilters)
    options: ScreenOptions = Field(default_factory=ScreenOptions)

    @field_validator("symbols")
    @classmethod
    def normalize_symbols(cls, symbols: list[str]) -> list[str]:
        normalized = [s.strip().upper() for s in symbols]
        if any(not s for s in normalized):
            raise ValueError("symbols must not be blank")
        return normalized


def parse_request(payload: Any) -> ScreenRequest:
    """Validate a raw payload into a ScreenRequest."""
    if isinstance(payload, ScreenRequest):
        return payload
    try:
        return ScreenRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequestError(
            f"Invalid screen request: {e.error_count()} error(s)",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e
