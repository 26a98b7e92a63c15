"""Admin API routes for editing the reference catalog.

Every edit goes through ``ReferenceCatalog``, which persists only the diff
against the built-in catalog. PUT and DELETE honour ``If-Match`` with the
revision from the ``ETag`` header; a stale revision yields 409.
"""

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status

from bloodwork.auth import require_admin
from bloodwork.schemas.reference import ReferenceDatabase, ReferenceValue, ReferenceValueCreate
from bloodwork.services.catalog_store import (
    ConflictError,
    DuplicateReferenceError,
    ReferenceCatalog,
    ReferenceNotFoundError,
    get_catalog,
)
from bloodwork.services.reference_catalog import CatalogIntegrityError

router = APIRouter(prefix="/admin/reference", tags=["admin"])


def _parse_if_match(if_match: str | None) -> str | None:
    """Extract the revision from an If-Match header ("*" means any)."""
    if if_match is None:
        return None
    revision = if_match.strip()
    if revision == "*":
        return None
    if revision.startswith("W/"):
        revision = revision[2:]
    return revision.strip('"')


@router.get("", response_model=ReferenceDatabase, response_model_exclude_none=True)
def get_admin_reference_database(
    response: Response,
    catalog: ReferenceCatalog = Depends(get_catalog),
    _admin_id: str = Depends(require_admin),
) -> ReferenceDatabase:
    """Get the merged catalog with its revision as ETag."""
    response.headers["ETag"] = f'"{catalog.revision}"'
    return catalog.database()


@router.get("/overrides", response_model=ReferenceDatabase, response_model_exclude_none=True)
def get_overrides(
    catalog: ReferenceCatalog = Depends(get_catalog),
    _admin_id: str = Depends(require_admin),
) -> ReferenceDatabase:
    """Get only the entries that differ from the built-in catalog."""
    return catalog.overrides()


@router.delete("/overrides", status_code=status.HTTP_204_NO_CONTENT)
def reset_overrides(
    if_match: str | None = Header(default=None),
    catalog: ReferenceCatalog = Depends(get_catalog),
    _admin_id: str = Depends(require_admin),
) -> None:
    """Discard every admin edit and restore the built-in catalog.

    Raises:
        HTTPException: 409 if If-Match is stale.
    """
    try:
        catalog.reset(expected_revision=_parse_if_match(if_match))
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.post(
    "",
    response_model=ReferenceValue,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def create_reference_value(
    data: ReferenceValueCreate,
    catalog: ReferenceCatalog = Depends(get_catalog),
    _admin_id: str = Depends(require_admin),
) -> ReferenceValue:
    """Create a catalog entry; its id is derived from the name.

    Raises:
        HTTPException: 409 if the id exists or a name/alias collides.
    """
    try:
        return catalog.create(data)
    except (DuplicateReferenceError, CatalogIntegrityError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.put("/{value_id}", response_model=ReferenceValue, response_model_exclude_none=True)
def update_reference_value(
    value_id: str,
    value: ReferenceValue,
    if_match: str | None = Header(default=None),
    catalog: ReferenceCatalog = Depends(get_catalog),
    _admin_id: str = Depends(require_admin),
) -> ReferenceValue:
    """Replace a catalog entry entirely.

    Saving an entry identical to its built-in version removes it from the
    override set.

    Raises:
        HTTPException: 400 on id mismatch, 404 if unknown, 409 on conflict.
    """
    if value.id != value_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Body id does not match URL",
        )

    try:
        return catalog.update(value_id, value, expected_revision=_parse_if_match(if_match))
    except ReferenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (ConflictError, CatalogIntegrityError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.delete("/{value_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_reference_value(
    value_id: str,
    if_match: str | None = Header(default=None),
    catalog: ReferenceCatalog = Depends(get_catalog),
    _admin_id: str = Depends(require_admin),
) -> None:
    """Delete a catalog entry.

    Raises:
        HTTPException: 404 if unknown, 409 on conflict.
    """
    try:
        catalog.delete(value_id, expected_revision=_parse_if_match(if_match))
    except ReferenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
