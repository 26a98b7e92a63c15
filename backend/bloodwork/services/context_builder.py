"""Builds the user-data context embedded in the AI doctor's system prompt.

Each value of the most recent entries is annotated with its status and,
when both bounds are finite, the effective reference range.
"""

from bloodwork.schemas.reference import ReferenceValue, ValueStatus
from bloodwork.schemas.user import Lifestyle, UserData
from bloodwork.services.reference_catalog import find_reference_value
from bloodwork.services.reports import format_number, sorted_entries
from bloodwork.services.value_status import (
    WARNING_BUFFER_RATIO,
    get_effective_range,
    get_value_status,
)

MAX_CONTEXT_ENTRIES = 5

SYSTEM_PROMPT = """Du bist ein hilfreicher medizinischer Assistent, der Blutwerte erklärt und einordnet.
Du hast Zugriff auf die Blutwerte des Nutzers und kannst Trends analysieren.
Antworte auf Deutsch, verständlich und einfühlsam.
Gib IMMER am Ende deiner Antwort den Hinweis, dass deine Aussagen keine ärztliche Diagnose ersetzen und bei gesundheitlichen Bedenken ein Arzt aufgesucht werden sollte.
Wenn Werte kritisch außerhalb des Referenzbereichs liegen, empfiehl dringend einen zeitnahen Arztbesuch.
Beziehe dich auf die konkreten Werte des Nutzers, wenn relevant.
Formatiere deine Antworten übersichtlich mit Markdown."""

STATUS_ANNOTATIONS: dict[ValueStatus, str] = {
    ValueStatus.CRITICAL_LOW: "🚨 KRITISCH NIEDRIG",
    ValueStatus.CRITICAL_HIGH: "🚨 KRITISCH HOCH",
    ValueStatus.LOW: "⬇ UNTER Referenzbereich",
    ValueStatus.HIGH: "⬆ ÜBER Referenzbereich",
    ValueStatus.WARNING: "⚠ Grenzwertig",
    ValueStatus.NORMAL: "✓ Normal",
}

_GENDER_LABELS = {"male": "männlich", "female": "weiblich"}

_LIFESTYLE_LABELS: dict[str, tuple[str, dict[str, str]]] = {
    "smoking": (
        "Rauchen",
        {"never": "nie", "former": "ehemals", "occasional": "gelegentlich", "regular": "regelmäßig"},
    ),
    "alcohol": (
        "Alkohol",
        {"never": "nie", "rarely": "selten", "moderate": "mäßig", "regular": "regelmäßig"},
    ),
    "exercise": (
        "Bewegung",
        {
            "none": "keine",
            "light": "leicht",
            "moderate": "mäßig",
            "active": "aktiv",
            "very_active": "sehr aktiv",
        },
    ),
    "diet": (
        "Ernährung",
        {
            "mixed": "Mischkost",
            "vegetarian": "vegetarisch",
            "vegan": "vegan",
            "pescatarian": "pescetarisch",
            "keto": "ketogen",
            "other": "andere",
        },
    ),
    "stress_level": (
        "Stress",
        {"low": "niedrig", "moderate": "mittel", "high": "hoch", "very_high": "sehr hoch"},
    ),
}


def _lifestyle_summary(lifestyle: Lifestyle | None) -> str:
    if lifestyle is None:
        return ""
    parts = []
    for field, (label, values) in _LIFESTYLE_LABELS.items():
        value = getattr(lifestyle, field)
        if value is not None:
            parts.append(f"{label}: {values[value]}")
    if lifestyle.sleep_hours is not None:
        parts.append(f"Schlaf: {format_number(lifestyle.sleep_hours)} h")
    return ", ".join(parts)



def _annotate(value: float, ref: ReferenceValue | None, gender: str | None, buffer_ratio: float) -> str:
    status = get_value_status(value, ref, gender, buffer_ratio)
    annotation = STATUS_ANNOTATIONS.get(status)
    if ref is None or annotation is None:
        return ""

    text = f" {annotation}"
    effective = get_effective_range(ref, gender)
    if effective.is_bounded:
        text += f" [Ref: {format_number(effective.min)}–{format_number(effective.max)}]"
    return text


def build_user_context(
    user_data: UserData,
    catalog: list[ReferenceValue],
    buffer_ratio: float = WARNING_BUFFER_RATIO,
) -> str:
    """Render the most recent entries as annotated Markdown.

    Args:
        user_data: The user's stored data.
        catalog: Merged reference catalog values.
        buffer_ratio: Warning buffer passed through to the status resolver.

    Returns:
        German Markdown text for the system prompt.
    """
    if not user_data.entries:
        return "Der Nutzer hat noch keine Blutwerte eingetragen."

    gender = user_data.gender
    header = f"Blutwerte von {user_data.display_name or 'Nutzer'}"
    if gender:
        header += f" ({_GENDER_LABELS[gender]})"
    lines = [header + ":", ""]

    if user_data.diagnoses:
        lines.append(f"Bekannte Diagnosen: {', '.join(user_data.diagnoses)}")
    if user_data.medications:
        lines.append(f"Medikamente: {', '.join(user_data.medications)}")
    lifestyle = _lifestyle_summary(user_data.lifestyle)
    if lifestyle:
        lines.append(f"Lebensstil: {lifestyle}")
    if user_data.diagnoses or user_data.medications or lifestyle:
        lines.append("")

    for entry in sorted_entries(user_data.entries)[:MAX_CONTEXT_ENTRIES]:
        title = f"**Eintrag vom {entry.date}"
        if entry.lab_name:
            title += f" ({entry.lab_name})"
        lines.append(title + ":**")

        for value in entry.values:
            ref = find_reference_value(catalog, value.name)
            status_text = _annotate(value.value, ref, gender, buffer_ratio)
            lines.append(f"- {value.name}: {format_number(value.value)} {value.unit}{status_text}")
        lines.append("")

    return "\n".join(lines)


def build_system_prompt(
    user_data: UserData,
    catalog: list[ReferenceValue],
    buffer_ratio: float = WARNING_BUFFER_RATIO,
) -> str:
    """Full system prompt: instructions plus the current user context."""
    context = build_user_context(user_data, catalog, buffer_ratio)
    return f"{SYSTEM_PROMPT}\n\n---\nKontext - Aktuelle Nutzerdaten:\n{context}"
