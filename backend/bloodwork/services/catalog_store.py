"""Owned, single-writer cache of the merged reference catalog.

``ReferenceCatalog`` holds the immutable built-in catalog, the persisted
override set and a lazily rebuilt merged view. Every admin edit runs the
same read-modify-write sequence under one lock:

1. pick up override changes made on disk by another process
2. check the caller's expected revision, if any
3. apply the single-entry mutation to the merged view
4. validate, recompute the minimal override set and persist it
   (the override file is deleted when nothing differs from built-in)
5. invalidate the merged cache

The revision is a content hash of the override set, so it is stable across
restarts and identical in every worker process.
"""

import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path

from bloodwork.config import settings
from bloodwork.schemas.reference import ReferenceDatabase, ReferenceValue, ReferenceValueCreate
from bloodwork.services.reference_catalog import (
    compute_overrides,
    find_reference_value,
    is_empty_override,
    list_categories,
    match_reference_value,
    merge_catalogs,
    search_reference_values,
    slugify,
    validate_catalog,
)
from bloodwork.utils.json_files import file_mtime_ns, read_model, write_text_atomic

logger = logging.getLogger(__name__)

OVERRIDES_FILENAME = "reference_overrides.json"


class ReferenceNotFoundError(LookupError):
    """No catalog entry with the given id."""


class DuplicateReferenceError(ValueError):
    """A catalog entry with the generated or supplied id already exists."""


class ConflictError(RuntimeError):
    """The catalog changed since the caller read it (revision mismatch)."""


def dump_reference_database(db: ReferenceDatabase) -> str:
    """Serialize a catalog the way it is stored on disk.

    Unset optional fields are omitted and ``id`` is written first, so a
    loaded-then-dumped file round-trips without spurious diffs.
    """
    values = []
    for value in db.values:
        data = value.model_dump(exclude_none=True)
        values.append({"id": data.pop("id"), **data})

    payload: dict = {"version": db.version, "updated": db.updated, "values": values}
    if db.removed:
        payload["removed"] = db.removed
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _revision_of(overrides: ReferenceDatabase) -> str:
    digest = hashlib.sha256()
    for value in overrides.values:
        digest.update(value.model_dump_json().encode("utf-8"))
    for value_id in overrides.removed:
        digest.update(b"-" + value_id.encode("utf-8"))
    return digest.hexdigest()[:16]


class ReferenceCatalog:
    """Two-layer reference catalog with diff-based persistence.

    Example:
        catalog = ReferenceCatalog(builtin_path, data_dir / OVERRIDES_FILENAME)
        ref = catalog.find("Hämoglobin")
        catalog.update(ref.id, ref.model_copy(update={"ref_max": 17.5}))
    """

    def __init__(
        self,
        builtin_path: Path,
        overrides_path: Path,
        builtin: ReferenceDatabase | None = None,
    ):
        """Load both layers and validate the merged view.

        Args:
            builtin_path: Path of the built-in catalog JSON.
            overrides_path: Path of the persisted override set.
            builtin: Pre-loaded built-in catalog (skips reading builtin_path).

        Raises:
            CatalogIntegrityError: If the merged catalog has colliding ids or names.
        """
        self._builtin_path = builtin_path
        self._overrides_path = overrides_path
        self._lock = threading.Lock()

        self._builtin = builtin if builtin is not None else self._load_builtin()
        self._overrides = ReferenceDatabase(version=self._builtin.version)
        self._overrides_mtime_ns: int | None = None
        self._merged: ReferenceDatabase | None = None

        with self._lock:
            self._refresh_overrides()
            validate_catalog(self._merged_view().values)

        logger.info(
            "Reference catalog loaded: %d built-in, %d overridden, %d removed",
            len(self._builtin.values),
            len(self._overrides.values),
            len(self._overrides.removed),
        )

    def _load_builtin(self) -> ReferenceDatabase:
        db = read_model(self._builtin_path, ReferenceDatabase)
        if db is None:
            logger.warning(
                "Built-in reference catalog unavailable at %s; continuing with an empty catalog",
                self._builtin_path,
            )
            return ReferenceDatabase()
        return db

    def _refresh_overrides(self) -> None:
        """Reload the override file if it changed on disk. Caller holds the lock."""
        mtime = file_mtime_ns(self._overrides_path)
        if mtime == self._overrides_mtime_ns:
            return

        loaded = read_model(self._overrides_path, ReferenceDatabase) if mtime is not None else None
        self._overrides = loaded or ReferenceDatabase(version=self._builtin.version)
        self._overrides_mtime_ns = mtime
        self._merged = None

    def _merged_view(self) -> ReferenceDatabase:
        if self._merged is None:
            self._merged = merge_catalogs(self._builtin, self._overrides)
        return self._merged

    # --- Read side ---

    @property
    def builtin(self) -> ReferenceDatabase:
        return self._builtin

    @property
    def revision(self) -> str:
        """Content hash of the current override set."""
        with self._lock:
            self._refresh_overrides()
            return _revision_of(self._overrides)

    def database(self) -> ReferenceDatabase:
        """The merged catalog, the only view exposed to consumers."""
        with self._lock:
            self._refresh_overrides()
            return self._merged_view()

    def overrides(self) -> ReferenceDatabase:
        """The persisted override set (empty when nothing differs)."""
        with self._lock:
            self._refresh_overrides()
            return self._overrides

    @property
    def values(self) -> list[ReferenceValue]:
        return self.database().values

    def get(self, value_id: str) -> ReferenceValue | None:
        return self.database().get(value_id)

    def find(self, name: str) -> ReferenceValue | None:
        """Exact name/alias lookup."""
        return find_reference_value(self.values, name)

    def match(self, name: str) -> ReferenceValue | None:
        """Exact lookup with fuzzy fallback (scan import only)."""
        return match_reference_value(self.values, name)

    def search(self, query: str) -> list[ReferenceValue]:
        return search_reference_values(self.values, query)

    def categories(self) -> list[str]:
        return list_categories(self.values)

    # --- Write side ---

    def create(self, data: ReferenceValueCreate) -> ReferenceValue:
        """Add a new entry with an id derived from its name.

        Raises:
            DuplicateReferenceError: If the derived id already exists.
            CatalogIntegrityError: If a name/alias collides with another entry.
        """
        value_id = slugify(data.name) or f"value_{int(time.time() * 1000)}"
        new_value = ReferenceValue(id=value_id, **data.model_dump())

        def apply(values: list[ReferenceValue]) -> list[ReferenceValue]:
            if any(v.id == value_id for v in values):
                raise DuplicateReferenceError(f"A reference value with id '{value_id}' already exists")
            return [*values, new_value]

        self._mutate(apply)
        return new_value

    def update(
        self,
        value_id: str,
        value: ReferenceValue,
        expected_revision: str | None = None,
    ) -> ReferenceValue:
        """Replace an entry entirely (no field-level merge).

        Raises:
            ValueError: If ``value.id`` differs from ``value_id``.
            ReferenceNotFoundError: If no entry has ``value_id``.
            ConflictError: If ``expected_revision`` is stale.
        """
        if value.id != value_id:
            raise ValueError(f"Body id '{value.id}' does not match '{value_id}'")

        def apply(values: list[ReferenceValue]) -> list[ReferenceValue]:
            index = next((i for i, v in enumerate(values) if v.id == value_id), None)
            if index is None:
                raise ReferenceNotFoundError(f"Reference value '{value_id}' not found")
            updated = list(values)
            updated[index] = value
            return updated

        self._mutate(apply, expected_revision)
        return value

    def delete(self, value_id: str, expected_revision: str | None = None) -> None:
        """Remove an entry; built-in entries are remembered as removed.

        Raises:
            ReferenceNotFoundError: If no entry has ``value_id``.
            ConflictError: If ``expected_revision`` is stale.
        """

        def apply(values: list[ReferenceValue]) -> list[ReferenceValue]:
            if not any(v.id == value_id for v in values):
                raise ReferenceNotFoundError(f"Reference value '{value_id}' not found")
            return [v for v in values if v.id != value_id]

        self._mutate(apply, expected_revision)

    def reset(self, expected_revision: str | None = None) -> None:
        """Drop every override and restore the built-in catalog."""
        self._mutate(lambda _values: list(self._builtin.values), expected_revision)

    def _mutate(
        self,
        apply: Callable[[list[ReferenceValue]], list[ReferenceValue]],
        expected_revision: str | None = None,
    ) -> None:
        with self._lock:
            self._refresh_overrides()
            current = _revision_of(self._overrides)
            if expected_revision is not None and expected_revision != current:
                raise ConflictError(
                    f"Reference catalog changed (revision {current}, expected {expected_revision})"
                )

            merged = self._merged_view()
            new_values = apply(list(merged.values))
            validate_catalog(new_values)

            new_merged = ReferenceDatabase(
                version=self._builtin.version,
                updated=datetime.now(timezone.utc).isoformat(timespec="seconds"),
                values=new_values,
            )
            overrides = compute_overrides(new_merged, self._builtin)
            self._persist(overrides)

            self._overrides = overrides
            self._merged = None

    def _persist(self, overrides: ReferenceDatabase) -> None:
        """Write the override set, or remove the file when it is empty. Caller holds the lock."""
        if is_empty_override(overrides):
            self._overrides_path.unlink(missing_ok=True)
            logger.info("Reference overrides empty; removed %s", self._overrides_path)
        else:
            write_text_atomic(self._overrides_path, dump_reference_database(overrides))
            logger.info(
                "Persisted %d reference overrides (%d removed) to %s",
                len(overrides.values),
                len(overrides.removed),
                self._overrides_path,
            )
        self._overrides_mtime_ns = file_mtime_ns(self._overrides_path)


@lru_cache
def get_catalog() -> ReferenceCatalog:
    """Process-wide catalog built from settings (FastAPI dependency)."""
    return ReferenceCatalog(
        builtin_path=Path(settings.builtin_reference_path),
        overrides_path=Path(settings.data_dir) / OVERRIDES_FILENAME,
    )
