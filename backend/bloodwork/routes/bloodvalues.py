"""Blood value API routes.

CRUD over the caller's lab entries plus derived views: per-value history,
dashboard summary and CSV export. Statuses are computed at read time from
the merged catalog and the caller's profile gender.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Response, status

from bloodwork.auth import verify_bearer_token
from bloodwork.config import settings
from bloodwork.schemas.bloodvalues import (
    BloodEntry,
    BloodEntryCreate,
    DashboardSummary,
    ValueHistory,
)
from bloodwork.schemas.user import UserData
from bloodwork.services.catalog_store import ReferenceCatalog, get_catalog
from bloodwork.services.file_store import FileStore, get_file_store
from bloodwork.services.reports import export_csv, sorted_entries, summarize, value_history

router = APIRouter(prefix="/bloodvalues", tags=["bloodvalues"])


def _entry_index(data: UserData, entry_id: str) -> int:
    for index, entry in enumerate(data.entries):
        if entry.id == entry_id:
            return index
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Entry not found",
    )


@router.get("", response_model=UserData, response_model_exclude={"api_tokens", "shares_given"})
def list_entries(
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> UserData:
    """Get the caller's data with entries sorted newest first."""
    data = store.get_user_data(user_id)
    data.entries = sorted_entries(data.entries)
    return data


@router.post("", response_model=BloodEntry, status_code=status.HTTP_201_CREATED)
def create_entry(
    entry_data: BloodEntryCreate,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> BloodEntry:
    """Create a new lab entry.

    Args:
        entry_data: Date, optional lab name/notes and at least one value.

    Returns:
        The created entry with its generated id.
    """
    data = store.get_user_data(user_id)
    entry = BloodEntry(id=str(uuid.uuid4()), **entry_data.model_dump())
    data.entries.append(entry)
    store.save_user_data(data)
    return entry


@router.get("/summary", response_model=DashboardSummary)
def get_summary(
    catalog: ReferenceCatalog = Depends(get_catalog),
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> DashboardSummary:
    """Dashboard counters and the latest reading of every value."""
    data = store.get_user_data(user_id)
    return summarize(data, catalog.values, settings.warning_buffer_ratio)


@router.get("/export.csv")
def export_entries_csv(
    catalog: ReferenceCatalog = Depends(get_catalog),
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> Response:
    """Download every reading as CSV with its status."""
    data = store.get_user_data(user_id)
    content = export_csv(data, catalog.values, settings.warning_buffer_ratio)
    filename = f"blutwerte_{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/history/{value_name}", response_model=ValueHistory)
def get_value_history(
    value_name: str,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> ValueHistory:
    """Chronological history of one value (case-insensitive name match)."""
    data = store.get_user_data(user_id)
    return ValueHistory(name=value_name, history=value_history(data, value_name))


@router.get("/{entry_id}", response_model=BloodEntry)
def get_entry(
    entry_id: str,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> BloodEntry:
    """Get a single entry.

    Raises:
        HTTPException: 404 if entry not found.
    """
    data = store.get_user_data(user_id)
    return data.entries[_entry_index(data, entry_id)]


@router.put("/{entry_id}", response_model=BloodEntry)
def replace_entry(
    entry_id: str,
    entry_data: BloodEntryCreate,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> BloodEntry:
    """Replace an entry; values are only ever changed as a whole.

    Raises:
        HTTPException: 404 if entry not found.
    """
    data = store.get_user_data(user_id)
    index = _entry_index(data, entry_id)
    entry = BloodEntry(id=entry_id, **entry_data.model_dump())
    data.entries[index] = entry
    store.save_user_data(data)
    return entry


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(
    entry_id: str,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> None:
    """Delete an entry.

    Raises:
        HTTPException: 404 if entry not found.
    """
    data = store.get_user_data(user_id)
    del data.entries[_entry_index(data, entry_id)]
    store.save_user_data(data)
