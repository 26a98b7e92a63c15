"""Pure functions over reference catalogs: merge, override diff, lookup.

The catalog has two layers. The built-in layer ships with the package and
is never written; the override layer holds admin edits, new entries and
deletions. Consumers only ever see ``merge_catalogs(builtin, overrides)``.

Overrides are whole-record replacements, never field-level patches, and
``compute_overrides`` keeps only what actually differs from the built-in
baseline so that reverting an edit removes it from the override set.
"""

from __future__ import annotations

import re

from bloodwork.schemas.reference import ReferenceDatabase, ReferenceValue

MAX_ID_LENGTH = 64
DEFAULT_SEARCH_LIMIT = 20


class CatalogIntegrityError(ValueError):
    """Two catalog entries share an id, or a name/alias case-insensitively."""


def merge_catalogs(builtin: ReferenceDatabase, overrides: ReferenceDatabase) -> ReferenceDatabase:
    """Return the effective catalog.

    Built-in order is preserved; an override replaces the built-in entry of
    the same id in place, ids listed in ``overrides.removed`` are dropped
    (unless an override re-adds them), and override-only entries are
    appended in override order.

    ``version`` and ``updated`` come from the overrides only when the
    effective values differ from the built-in ones.
    """
    replacements = {value.id: value for value in overrides.values}
    removed = set(overrides.removed)

    values: list[ReferenceValue] = []
    for value in builtin.values:
        if value.id in removed and value.id not in replacements:
            continue
        values.append(replacements.pop(value.id, value))
    values.extend(v for v in overrides.values if v.id in replacements)

    has_overrides = values != builtin.values
    return ReferenceDatabase(
        version=overrides.version if has_overrides else builtin.version,
        updated=overrides.updated if has_overrides and overrides.updated else builtin.updated,
        values=values,
    )


def compute_overrides(merged: ReferenceDatabase, builtin: ReferenceDatabase) -> ReferenceDatabase:
    """Return the minimal override set that reproduces ``merged`` from ``builtin``.

    An entry is kept if its id is new or if it differs structurally from the
    built-in entry of the same id. Built-in ids missing from ``merged`` are
    recorded as removed.
    """
    builtin_by_id = {value.id: value for value in builtin.values}
    merged_ids = set(merged.ids())

    changed = [
        value
        for value in merged.values
        if builtin_by_id.get(value.id) != value
    ]
    removed = [value.id for value in builtin.values if value.id not in merged_ids]

    return ReferenceDatabase(
        version=merged.version,
        updated=merged.updated,
        values=changed,
        removed=removed,
    )


def is_empty_override(overrides: ReferenceDatabase) -> bool:
    return not overrides.values and not overrides.removed


def validate_catalog(values: list[ReferenceValue]) -> None:
    """Fail loudly on duplicate ids or colliding match names.

    Exact lookup returns the first hit, so a name or alias that two entries
    share case-insensitively would make one of them unreachable.

    Raises:
        CatalogIntegrityError: On the first collision found.
    """
    seen_ids: set[str] = set()
    owner_by_name: dict[str, str] = {}

    for value in values:
        if value.id in seen_ids:
            raise CatalogIntegrityError(f"Duplicate reference id '{value.id}'")
        seen_ids.add(value.id)

        for candidate in value.match_names():
            key = candidate.strip().lower()
            if not key:
                continue
            owner = owner_by_name.setdefault(key, value.id)
            if owner != value.id:
                raise CatalogIntegrityError(
                    f"Name '{candidate}' of '{value.id}' collides with '{owner}'"
                )


def find_reference_value(values: list[ReferenceValue], name: str) -> ReferenceValue | None:
    """Exact, case-insensitive lookup by name or alias."""
    lower = name.strip().lower()
    if not lower:
        return None
    for value in values:
        if value.name.lower() == lower or any(a.lower() == lower for a in value.aliases):
            return value
    return None


def fuzzy_match_reference_value(values: list[ReferenceValue], name: str) -> ReferenceValue | None:
    """Permissive lookup for names read off scanned lab reports.

    Matches when the query contains a catalog name/alias or vice versa,
    case-insensitively. The first hit in catalog order wins, so with several
    candidates the result depends on catalog order (a short alias such as
    "Hb" also matches "HbA1c (IFCC)"). Callers that need a stricter answer
    should use ``find_reference_value``.
    """
    lower = name.strip().lower()
    if not lower:
        return None
    for value in values:
        for candidate in value.match_names():
            cand = candidate.strip().lower()
            if cand and (cand in lower or lower in cand):
                return value
    return None


def match_reference_value(values: list[ReferenceValue], name: str) -> ReferenceValue | None:
    """Exact lookup first, then the fuzzy fallback. Used by the scan import."""
    return find_reference_value(values, name) or fuzzy_match_reference_value(values, name)


def search_reference_values(values: list[ReferenceValue], query: str) -> list[ReferenceValue]:
    """Substring search across name, aliases and category, in catalog order.

    An empty query returns the first ``DEFAULT_SEARCH_LIMIT`` entries.
    """
    lower = query.strip().lower()
    if not lower:
        return values[:DEFAULT_SEARCH_LIMIT]
    return [
        value
        for value in values
        if lower in value.name.lower()
        or any(lower in alias.lower() for alias in value.aliases)
        or lower in value.category.lower()
    ]


def list_categories(values: list[ReferenceValue]) -> list[str]:
    """Sorted unique categories."""
    return sorted({value.category for value in values})


def slugify(name: str) -> str:
    """Derive a catalog id from a display name.

    Lowercases, turns whitespace runs into underscores, transliterates
    German umlauts and drops everything outside ``[a-z0-9_]``.
    """
    slug = name.lower().strip()
    for src, dst in (("ä", "ae"), ("ö", "oe"), ("ü", "ue"), ("ß", "ss")):
        slug = slug.replace(src, dst)
    slug = re.sub(r"\s+", "_", slug)
    slug = re.sub(r"[^a-z0-9_]", "", slug)
    return slug[:MAX_ID_LENGTH]
