"""Current-user profile routes."""

from fastapi import APIRouter, Depends

from bloodwork.auth import verify_bearer_token
from bloodwork.config import settings
from bloodwork.schemas.user import ProfileUpdate, UserData, UserProfileResponse
from bloodwork.services.file_store import FileStore, get_file_store

router = APIRouter(prefix="/user", tags=["user"])


def _profile(data: UserData) -> UserProfileResponse:
    return UserProfileResponse(
        user_id=data.user_id,
        display_name=data.display_name,
        email=data.email,
        gender=data.gender,
        diagnoses=data.diagnoses,
        medications=data.medications,
        lifestyle=data.lifestyle,
        is_admin=data.user_id in settings.admin_ids,
        entry_count=len(data.entries),
    )


@router.get("/me", response_model=UserProfileResponse)
def get_me(
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> UserProfileResponse:
    """Get the caller's profile."""
    return _profile(store.get_user_data(user_id))


@router.patch("/profile", response_model=UserProfileResponse)
def update_profile(
    update: ProfileUpdate,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> UserProfileResponse:
    """Update profile fields that are provided.

    Gender drives the sex-specific reference ranges used for every status.
    """
    data = store.get_user_data(user_id)
    for field in update.model_fields_set:
        setattr(data, field, getattr(update, field))
    store.save_user_data(data)
    return _profile(data)
