"""Read-only data sharing between users.

The owner keeps the authoritative ``Share`` records in their user data; a
central index keyed by recipient email lets recipients find what has been
shared with them. Expired shares are hidden from listings and answer 410.
"""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from bloodwork.auth import verify_bearer_token
from bloodwork.config import settings
from bloodwork.schemas.user import (
    Share,
    ShareCreate,
    SharedData,
    SharedEntry,
    SharedValue,
    ShareIndexEntry,
    UserData,
)
from bloodwork.services.catalog_store import ReferenceCatalog, get_catalog
from bloodwork.services.file_store import FileStore, get_file_store
from bloodwork.services.reference_catalog import find_reference_value
from bloodwork.services.reports import sorted_entries
from bloodwork.services.value_status import get_value_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shares", tags=["shares"])


def _is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or datetime.now(timezone.utc))


def _caller_email(store: FileStore, user_id: str) -> str:
    return store.get_user_data(user_id).email.lower()


def _received_shares(store: FileStore, user_id: str) -> list[tuple[UserData, Share]]:
    """Shares granted to the caller, confirmed against each owner's records.

    The email index only locates candidates; a share counts as received when
    the owner's ``Share`` names the caller's user id.
    """
    email = _caller_email(store, user_id)
    if not email:
        return []

    received = []
    for entry in store.get_shares_index().get(email, []):
        owner = store.get_user_data(entry.owner_user_id)
        share = next((s for s in owner.shares_given if s.id == entry.share_id), None)
        if share is not None and share.shared_with_user_id == user_id:
            received.append((owner, share))
    return received


@router.get("/given", response_model=list[Share])
def list_given_shares(
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> list[Share]:
    """List the caller's active (unexpired) shares."""
    data = store.get_user_data(user_id)
    return [share for share in data.shares_given if not _is_expired(share.expires_at)]


@router.post("", response_model=Share, status_code=status.HTTP_201_CREATED)
def create_share(
    request: ShareCreate,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> Share:
    """Grant another registered user read access to the caller's values.

    Raises:
        HTTPException: 400 when sharing with yourself, 404 if no user has the
            email, 409 if an active share with that user already exists.
    """
    email = request.email.lower()
    owner = store.get_user_data(user_id)

    if owner.email.lower() == email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot share with yourself",
        )

    recipient = store.find_user_by_email(email)
    if recipient is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No user with this email address",
        )

    if any(
        share.shared_with_email == email and not _is_expired(share.expires_at)
        for share in owner.shares_given
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Already sharing with this user",
        )

    share = Share(
        id=str(uuid.uuid4()),
        owner_user_id=user_id,
        owner_display_name=owner.display_name,
        shared_with_email=email,
        shared_with_user_id=recipient.user_id,
        expires_at=request.expires_at,
        created_at=datetime.now(timezone.utc),
    )
    owner.shares_given.append(share)
    store.save_user_data(owner)

    index = store.get_shares_index()
    index.setdefault(email, []).append(
        ShareIndexEntry(
            share_id=share.id,
            owner_user_id=share.owner_user_id,
            owner_display_name=share.owner_display_name,
            expires_at=share.expires_at,
            created_at=share.created_at,
        )
    )
    store.save_shares_index(index)
    logger.info("User %s shared data with %s", user_id, recipient.user_id)
    return share


@router.delete("/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_share(
    share_id: str,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> None:
    """Revoke one of the caller's shares.

    Raises:
        HTTPException: 404 if share not found.
    """
    data = store.get_user_data(user_id)
    share = next((s for s in data.shares_given if s.id == share_id), None)
    if share is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Share not found",
        )

    data.shares_given = [s for s in data.shares_given if s.id != share_id]
    store.save_user_data(data)

    index = store.get_shares_index()
    if share.shared_with_email in index:
        index[share.shared_with_email] = [
            e for e in index[share.shared_with_email] if e.share_id != share_id
        ]
        store.save_shares_index(index)


@router.get("/received", response_model=list[ShareIndexEntry])
def list_received_shares(
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> list[ShareIndexEntry]:
    """List active shares granted to the caller."""
    return [
        ShareIndexEntry(
            share_id=share.id,
            owner_user_id=share.owner_user_id,
            owner_display_name=share.owner_display_name,
            expires_at=share.expires_at,
            created_at=share.created_at,
        )
        for _owner, share in _received_shares(store, user_id)
        if not _is_expired(share.expires_at)
    ]


@router.get("/received/{share_id}/data", response_model=SharedData)
def get_shared_data(
    share_id: str,
    catalog: ReferenceCatalog = Depends(get_catalog),
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> SharedData:
    """Read the share owner's entries, each value annotated with its status.

    Statuses use the owner's gender, not the viewer's.

    Raises:
        HTTPException: 404 if no such share for the caller, 410 if expired.
    """
    found = next(
        ((owner, share) for owner, share in _received_shares(store, user_id) if share.id == share_id),
        None,
    )
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Share not found",
        )
    owner, share = found
    if _is_expired(share.expires_at):
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="This share has expired",
        )

    values = catalog.values
    shared_entries = []
    for blood_entry in sorted_entries(owner.entries):
        shared_values = []
        for value in blood_entry.values:
            ref = find_reference_value(values, value.name)
            shared_values.append(
                SharedValue(
                    name=value.name,
                    value=value.value,
                    unit=value.unit,
                    category=value.category,
                    status=get_value_status(
                        value.value, ref, owner.gender, settings.warning_buffer_ratio
                    ),
                )
            )
        shared_entries.append(
            SharedEntry(
                id=blood_entry.id,
                date=blood_entry.date,
                lab_name=blood_entry.lab_name,
                values=shared_values,
            )
        )

    return SharedData(
        user_id=owner.user_id,
        display_name=owner.display_name,
        gender=owner.gender,
        entries=shared_entries,
    )
