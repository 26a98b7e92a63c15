"""Reference-range resolution and value status classification.

Maps a measured value, its catalog entry and the user's sex to one of the
seven ``ValueStatus`` variants. All functions here are pure: no I/O, no
shared state, safe to call from any number of requests concurrently.

Classification order (first match wins):
  no catalog entry                  -> unknown
  value <= critical_low             -> critical_low
  value >= critical_high            -> critical_high
  value <  effective min            -> low
  value >  effective max            -> high
  within buffer of either edge      -> warning
  otherwise                         -> normal

Critical thresholds are inclusive, range bounds exclusive. The warning
buffer only applies when both effective bounds are finite.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from bloodwork.schemas.reference import ReferenceValue, ValueStatus

# Fraction of the range width, measured inwards from each edge, that counts as "borderline"
WARNING_BUFFER_RATIO = 0.10

STATUS_LABELS: dict[ValueStatus, str] = {
    ValueStatus.NORMAL: "Normal",
    ValueStatus.WARNING: "Grenzwertig",
    ValueStatus.HIGH: "Erhöht",
    ValueStatus.LOW: "Erniedrigt",
    ValueStatus.CRITICAL_HIGH: "Kritisch hoch",
    ValueStatus.CRITICAL_LOW: "Kritisch niedrig",
    ValueStatus.UNKNOWN: "Unbekannt",
}

# Dashboard ordering: most severe first
STATUS_SEVERITY: dict[ValueStatus, int] = {
    ValueStatus.CRITICAL_HIGH: 0,
    ValueStatus.CRITICAL_LOW: 0,
    ValueStatus.HIGH: 1,
    ValueStatus.LOW: 1,
    ValueStatus.WARNING: 2,
    ValueStatus.UNKNOWN: 3,
    ValueStatus.NORMAL: 4,
}

ABNORMAL_STATUSES = frozenset(
    {
        ValueStatus.CRITICAL_HIGH,
        ValueStatus.CRITICAL_LOW,
        ValueStatus.HIGH,
        ValueStatus.LOW,
    }
)


@dataclass(frozen=True)
class EffectiveRange:
    """Sex-adjusted bounds; an unset side is ``-inf`` / ``+inf``."""

    min: float
    max: float

    @property
    def is_bounded(self) -> bool:
        """True when both sides are finite."""
        return math.isfinite(self.min) and math.isfinite(self.max)

    def as_optional(self) -> tuple[float | None, float | None]:
        """Bounds with infinite sides mapped to ``None`` (JSON-safe)."""
        return (
            self.min if math.isfinite(self.min) else None,
            self.max if math.isfinite(self.max) else None,
        )


def get_effective_range(ref: ReferenceValue, gender: str | None = None) -> EffectiveRange:
    """Return the bounds a value is tested against.

    Sex-specific bounds override the neutral ones field by field: a male
    ``ref_max_male`` replaces ``ref_max`` while ``ref_min`` still applies if
    no ``ref_min_male`` is configured. Any gender other than "male" or
    "female" (including ``None``) ignores sex-specific fields entirely.

    Args:
        ref: Catalog entry.
        gender: "male", "female", or None.

    Returns:
        EffectiveRange, possibly (-inf, +inf) when nothing is configured.
    """
    low = ref.ref_min if ref.ref_min is not None else -math.inf
    high = ref.ref_max if ref.ref_max is not None else math.inf

    if gender == "female":
        if ref.ref_min_female is not None:
            low = ref.ref_min_female
        if ref.ref_max_female is not None:
            high = ref.ref_max_female
    elif gender == "male":
        if ref.ref_min_male is not None:
            low = ref.ref_min_male
        if ref.ref_max_male is not None:
            high = ref.ref_max_male

    return EffectiveRange(min=low, max=high)


def is_in_warning_zone(
    value: float,
    effective: EffectiveRange,
    buffer_ratio: float = WARNING_BUFFER_RATIO,
) -> bool:
    """True if an in-range value lies within the buffer of either edge.

    Open-ended ranges never produce a warning: with an infinite side the
    buffer would be infinite (or NaN), so the check is skipped explicitly.
    """
    if not effective.is_bounded:
        return False
    buffer = (effective.max - effective.min) * buffer_ratio
    return value < effective.min + buffer or value > effective.max - buffer


def get_value_status(
    value: float,
    ref: ReferenceValue | None,
    gender: str | None = None,
    buffer_ratio: float = WARNING_BUFFER_RATIO,
) -> ValueStatus:
    """Classify one measurement against its catalog entry.

    ``value`` must be finite; entry validation rejects NaN and infinities
    before values reach this function.

    Args:
        value: Measured value.
        ref: Catalog entry, or None if the name did not resolve.
        gender: "male", "female", or None.
        buffer_ratio: Width of the warning zone as a fraction of the range.

    Returns:
        The first matching ValueStatus.
    """
    if ref is None:
        return ValueStatus.UNKNOWN

    effective = get_effective_range(ref, gender)

    if ref.critical_low is not None and value <= ref.critical_low:
        return ValueStatus.CRITICAL_LOW
    if ref.critical_high is not None and value >= ref.critical_high:
        return ValueStatus.CRITICAL_HIGH
    if value < effective.min:
        return ValueStatus.LOW
    if value > effective.max:
        return ValueStatus.HIGH
    if is_in_warning_zone(value, effective, buffer_ratio):
        return ValueStatus.WARNING
    return ValueStatus.NORMAL


def get_status_label(status: ValueStatus) -> str:
    """Human-readable (German) label for a status."""
    return STATUS_LABELS[status]


def is_abnormal(status: ValueStatus) -> bool:
    """True for statuses outside the reference range (including critical)."""
    return status in ABNORMAL_STATUSES
