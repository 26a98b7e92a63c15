"""Pydantic schemas for blood-test entries and derived views."""

from typing import Literal

from pydantic import BaseModel, Field

from bloodwork.schemas.reference import ReferenceValue, ValueStatus

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class BloodValue(BaseModel):
    """A single measurement within an entry.

    ``name`` is free text; it is resolved against the catalog at read time,
    not stored as a foreign key.
    """

    name: str = Field(min_length=1, max_length=100)
    value: float = Field(allow_inf_nan=False)
    unit: str = Field(min_length=1, max_length=50)
    category: str = Field(min_length=1, max_length=100)
    short_name: str | None = None
    long_name: str | None = None


class BloodEntryCreate(BaseModel):
    """Request body for creating or replacing an entry."""

    date: str = Field(pattern=DATE_PATTERN, description="Sample date, YYYY-MM-DD")
    lab_name: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=2000)
    values: list[BloodValue] = Field(min_length=1)


class BloodEntry(BloodEntryCreate):
    """A saved lab report: one date, many values."""

    id: str


class HistoryPoint(BaseModel):
    """One measurement of a named value over time."""

    date: str
    value: float
    unit: str
    entry_id: str


class ValueHistory(BaseModel):
    """Chronological history of one named value."""

    name: str
    history: list[HistoryPoint]


Trend = Literal["up", "down", "stable"]


class ValueSummaryItem(BaseModel):
    """Latest reading of one named value with its classification."""

    name: str
    category: str
    unit: str
    latest_value: float
    latest_date: str
    status: ValueStatus
    trend: Trend | None = None
    ref: ReferenceValue | None = None
    history: list[HistoryPoint] = Field(default_factory=list)


class DashboardSummary(BaseModel):
    """Dashboard counters plus per-value summary items."""

    normal: int = 0
    warning: int = 0
    abnormal: int = 0
    unknown: int = 0
    total: int = 0
    items: list[ValueSummaryItem] = Field(default_factory=list)
