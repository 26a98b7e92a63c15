"""Derived views over a user's entries: history, dashboard summary, CSV export.

Values are resolved against the catalog by exact name/alias lookup only;
unresolved names classify as ``unknown``.
"""

import csv
import io

from bloodwork.schemas.bloodvalues import (
    BloodEntry,
    DashboardSummary,
    HistoryPoint,
    Trend,
    ValueSummaryItem,
)
from bloodwork.schemas.reference import ReferenceValue, ValueStatus
from bloodwork.schemas.user import UserData
from bloodwork.services.reference_catalog import find_reference_value
from bloodwork.services.value_status import (
    STATUS_SEVERITY,
    WARNING_BUFFER_RATIO,
    get_value_status,
    is_abnormal,
)

# Relative change (percent) below which two readings count as stable
TREND_STABLE_PERCENT = 5.0

CSV_HEADER = ["Datum", "Labor", "Wert", "Messwert", "Einheit", "Kategorie", "Status"]


def format_number(value: float) -> str:
    """Integral floats without a trailing ".0", everything else as-is."""
    return str(int(value)) if value.is_integer() else str(value)


def sorted_entries(entries: list[BloodEntry], newest_first: bool = True) -> list[BloodEntry]:
    """Entries ordered by ISO date (stable for equal dates)."""
    return sorted(entries, key=lambda e: e.date, reverse=newest_first)


def value_history(user_data: UserData, name: str) -> list[HistoryPoint]:
    """Chronological readings of one value, matched case-insensitively by name."""
    lower = name.lower()
    history: list[HistoryPoint] = []
    for entry in sorted_entries(user_data.entries, newest_first=False):
        for value in entry.values:
            if value.name.lower() == lower:
                history.append(
                    HistoryPoint(date=entry.date, value=value.value, unit=value.unit, entry_id=entry.id)
                )
                break
    return history


def trend(history: list[HistoryPoint]) -> Trend | None:
    """Direction of the last change: up, down, stable, or None if < 2 readings."""
    if len(history) < 2:
        return None
    last = history[-1].value
    prev = history[-2].value
    if prev == 0:
        if last == prev:
            return "stable"
        return "up" if last > prev else "down"
    diff = (last - prev) / abs(prev) * 100
    if abs(diff) < TREND_STABLE_PERCENT:
        return "stable"
    return "up" if diff > 0 else "down"


def summarize(
    user_data: UserData,
    catalog: list[ReferenceValue],
    buffer_ratio: float = WARNING_BUFFER_RATIO,
) -> DashboardSummary:
    """Latest reading per distinct value with status, trend and counters.

    Items are ordered by severity (critical first, normal last), then name.
    """
    names: dict[str, str] = {}
    for entry in sorted_entries(user_data.entries, newest_first=False):
        for value in entry.values:
            # Later entries win, so the display name follows the latest reading
            names[value.name.lower()] = value.name

    summary = DashboardSummary()
    for display_name in names.values():
        history = value_history(user_data, display_name)
        latest_point = history[-1]
        latest_entry = next(e for e in user_data.entries if e.id == latest_point.entry_id)
        latest_value = next(v for v in latest_entry.values if v.name.lower() == display_name.lower())

        ref = find_reference_value(catalog, display_name)
        status = get_value_status(latest_point.value, ref, user_data.gender, buffer_ratio)

        summary.items.append(
            ValueSummaryItem(
                name=display_name,
                category=latest_value.category,
                unit=latest_value.unit,
                latest_value=latest_point.value,
                latest_date=latest_point.date,
                status=status,
                trend=trend(history),
                ref=ref,
                history=history,
            )
        )

        if status == ValueStatus.NORMAL:
            summary.normal += 1
        elif status == ValueStatus.WARNING:
            summary.warning += 1
        elif is_abnormal(status):
            summary.abnormal += 1
        else:
            summary.unknown += 1

    summary.items.sort(key=lambda item: (STATUS_SEVERITY[item.status], item.name.lower()))
    summary.total = len(summary.items)
    return summary


def export_csv(
    user_data: UserData,
    catalog: list[ReferenceValue],
    buffer_ratio: float = WARNING_BUFFER_RATIO,
) -> str:
    """All readings as CSV (newest entry first), every field quoted, with a UTF-8 BOM."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for entry in sorted_entries(user_data.entries):
        for value in entry.values:
            ref = find_reference_value(catalog, value.name)
            status = get_value_status(value.value, ref, user_data.gender, buffer_ratio)
            writer.writerow(
                [
                    entry.date,
                    entry.lab_name or "",
                    value.name,
                    format_number(value.value),
                    value.unit,
                    value.category,
                    status.value,
                ]
            )

    return "\ufeff" + buffer.getvalue()
