"""Reference catalog API routes (read-only, any authenticated user).

Serves the merged catalog: built-in entries with admin overrides applied.
The catalog revision is returned as the ``ETag`` header so admin clients
can send it back as ``If-Match`` when editing.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from bloodwork.auth import verify_bearer_token
from bloodwork.config import settings
from bloodwork.schemas.reference import (
    EffectiveRangeResponse,
    ReferenceDatabase,
    ReferenceValue,
    StatusRequest,
    StatusResponse,
)
from bloodwork.services.catalog_store import ReferenceCatalog, get_catalog
from bloodwork.services.file_store import FileStore, get_file_store
from bloodwork.services.value_status import (
    get_effective_range,
    get_status_label,
    get_value_status,
)

router = APIRouter(prefix="/reference", tags=["reference"])


@router.get("", response_model=ReferenceDatabase, response_model_exclude_none=True)
def get_reference_database(
    response: Response,
    catalog: ReferenceCatalog = Depends(get_catalog),
    _user_id: str = Depends(verify_bearer_token),
) -> ReferenceDatabase:
    """Get the full merged reference catalog."""
    response.headers["ETag"] = f'"{catalog.revision}"'
    return catalog.database()


@router.get("/categories")
def get_categories(
    catalog: ReferenceCatalog = Depends(get_catalog),
    _user_id: str = Depends(verify_bearer_token),
) -> list[str]:
    """Get the sorted unique categories of the catalog."""
    return catalog.categories()


@router.get("/search", response_model=list[ReferenceValue], response_model_exclude_none=True)
def search_reference_values(
    q: str = "",
    catalog: ReferenceCatalog = Depends(get_catalog),
    _user_id: str = Depends(verify_bearer_token),
) -> list[ReferenceValue]:
    """Substring search over name, aliases and category (autocomplete).

    Args:
        q: Search text. Empty returns the first 20 entries.
    """
    return catalog.search(q)


@router.post("/status", response_model=StatusResponse)
def classify_value(
    request: StatusRequest,
    catalog: ReferenceCatalog = Depends(get_catalog),
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> StatusResponse:
    """Classify one measurement against the catalog.

    Resolves ``ref_id`` if given, otherwise ``name`` by exact lookup. When
    no gender is supplied, the caller's profile gender is used.
    """
    ref = catalog.get(request.ref_id) if request.ref_id else catalog.find(request.name or "")
    gender = request.gender or store.get_user_data(user_id).gender

    value_status = get_value_status(request.value, ref, gender, settings.warning_buffer_ratio)
    effective_range = None
    if ref is not None:
        low, high = get_effective_range(ref, gender).as_optional()
        effective_range = EffectiveRangeResponse(min=low, max=high)

    return StatusResponse(
        status=value_status,
        label=get_status_label(value_status),
        ref=ref,
        effective_range=effective_range,
    )


@router.get("/{name}", response_model=ReferenceValue, response_model_exclude_none=True)
def get_reference_value(
    name: str,
    catalog: ReferenceCatalog = Depends(get_catalog),
    _user_id: str = Depends(verify_bearer_token),
) -> ReferenceValue:
    """Get a single reference value by exact name or alias.

    Raises:
        HTTPException: 404 if no entry matches.
    """
    ref = catalog.find(name)
    if ref is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Reference value not found",
        )
    return ref
