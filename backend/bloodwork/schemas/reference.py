"""Pydantic schemas for the reference catalog.

A ``ReferenceValue`` describes one lab measurement: its names, unit and the
optional bounds used by the status resolver. Every bound is independently
optional; ``None`` always means "not configured", never zero.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Gender = Literal["male", "female"]


class ValueStatus(str, Enum):
    """Clinical significance of a single measurement.

    Declared in evaluation priority order: the resolver returns the first
    variant whose rule matches.
    """

    CRITICAL_LOW = "critical_low"
    CRITICAL_HIGH = "critical_high"
    LOW = "low"
    HIGH = "high"
    WARNING = "warning"
    NORMAL = "normal"
    UNKNOWN = "unknown"


# (lower field, upper field) pairs that must satisfy lower <= upper when both are set
_BOUND_PAIRS: tuple[tuple[str, str], ...] = (
    ("ref_min", "ref_max"),
    ("ref_min_female", "ref_max_female"),
    ("ref_min_male", "ref_max_male"),
    ("optimal_min", "optimal_max"),
    ("critical_low", "critical_high"),
)


class ReferenceValueCreate(BaseModel):
    """Reference value fields as submitted by an admin (id is generated)."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=200)
    short_name: str | None = None
    long_name: str | None = None
    aliases: list[str] = Field(default_factory=list)
    category: str = Field(min_length=1, max_length=100)
    unit: str = Field(min_length=1, max_length=50)

    # Sex-neutral reference range
    ref_min: float | None = None
    ref_max: float | None = None
    # Sex-specific overrides of the neutral bounds (per field)
    ref_min_female: float | None = None
    ref_max_female: float | None = None
    ref_min_male: float | None = None
    ref_max_male: float | None = None
    # Display-only "ideal" band
    optimal_min: float | None = None
    optimal_max: float | None = None
    # Take precedence over the reference range
    critical_low: float | None = None
    critical_high: float | None = None

    description: str = ""
    high_info: str = ""
    low_info: str = ""
    recommendations: str = ""

    @model_validator(mode="after")
    def _check_bound_order(self):
        for low_field, high_field in _BOUND_PAIRS:
            low = getattr(self, low_field)
            high = getattr(self, high_field)
            if low is not None and high is not None and low > high:
                raise ValueError(f"{low_field} ({low}) must not exceed {high_field} ({high})")
        return self


class ReferenceValue(ReferenceValueCreate):
    """A named lab measurement definition, keyed by a stable slug."""

    id: str = Field(min_length=1, max_length=64)

    def match_names(self) -> list[str]:
        """All strings a free-text measurement name is matched against."""
        return [self.name, *self.aliases]


class ReferenceDatabase(BaseModel):
    """A versioned list of reference values.

    Used for the built-in catalog, the merged view and the override set.
    ``removed`` is only populated on override sets: ids of built-in entries
    an admin has deleted.
    """

    version: str = "1.0"
    updated: str = ""
    values: list[ReferenceValue] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    def ids(self) -> list[str]:
        return [v.id for v in self.values]

    def get(self, value_id: str) -> ReferenceValue | None:
        for value in self.values:
            if value.id == value_id:
                return value
        return None


class EffectiveRangeResponse(BaseModel):
    """Sex-adjusted bounds; ``None`` stands for an open (infinite) side."""

    min: float | None
    max: float | None


class StatusRequest(BaseModel):
    """Request body for classifying one measurement."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    ref_id: str | None = Field(default=None, min_length=1, max_length=64)
    value: float = Field(allow_inf_nan=False)
    gender: Gender | None = None

    @model_validator(mode="after")
    def _require_name_or_id(self):
        if self.name is None and self.ref_id is None:
            raise ValueError("either name or ref_id is required")
        return self


class StatusResponse(BaseModel):
    """Classification result for one measurement."""

    status: ValueStatus
    label: str
    ref: ReferenceValue | None = None
    effective_range: EffectiveRangeResponse | None = None
