"""Pydantic schemas for user profiles, API tokens and read-only shares."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from bloodwork.schemas.bloodvalues import BloodEntry
from bloodwork.schemas.reference import Gender, ValueStatus

MAX_TOKENS_PER_USER = 10


class ApiToken(BaseModel):
    """A personal API token. Only the hash of the secret is persisted."""

    id: str
    name: str
    token_hash: str
    token_prefix: str = Field(description="First characters of the secret, for display")
    created_at: datetime


class Share(BaseModel):
    """A read-only grant of one user's data to another user."""

    id: str
    owner_user_id: str
    owner_display_name: str
    shared_with_email: str
    shared_with_user_id: str
    permission: Literal["read"] = "read"
    expires_at: datetime | None = None
    created_at: datetime


class Lifestyle(BaseModel):
    """Self-reported lifestyle factors, passed to the AI doctor as context."""

    smoking: Literal["never", "former", "occasional", "regular"] | None = None
    alcohol: Literal["never", "rarely", "moderate", "regular"] | None = None
    exercise: Literal["none", "light", "moderate", "active", "very_active"] | None = None
    diet: Literal["mixed", "vegetarian", "vegan", "pescatarian", "keto", "other"] | None = None
    sleep_hours: float | None = Field(default=None, ge=4, le=12, allow_inf_nan=False)
    stress_level: Literal["low", "moderate", "high", "very_high"] | None = None


class UserData(BaseModel):
    """Everything persisted per user in ``bloodvalues.json``."""

    user_id: str
    display_name: str = ""
    email: str = ""
    gender: Gender | None = None
    diagnoses: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)
    lifestyle: Lifestyle | None = None
    entries: list[BloodEntry] = Field(default_factory=list)
    api_tokens: list[ApiToken] = Field(default_factory=list)
    shares_given: list[Share] = Field(default_factory=list)


class UserProfileResponse(BaseModel):
    """Public view of the current user (no tokens, no entries)."""

    user_id: str
    display_name: str
    email: str
    gender: Gender | None = None
    diagnoses: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)
    lifestyle: Lifestyle | None = None
    is_admin: bool = False
    entry_count: int = 0


class ProfileUpdate(BaseModel):
    """Partial profile update; omitted fields are left untouched.

    Email is set at provisioning only; unknown fields are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    display_name: str | None = Field(default=None, min_length=1, max_length=200)
    gender: Gender | None = None
    diagnoses: list[str] | None = Field(default=None, max_length=50)
    medications: list[str] | None = Field(default=None, max_length=50)
    lifestyle: Lifestyle | None = None


class TokenCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class TokenInfo(BaseModel):
    """Token listing entry; never includes the secret."""

    id: str
    name: str
    token_prefix: str
    created_at: datetime


class TokenCreated(TokenInfo):
    """Returned exactly once, on creation."""

    token: str


class ShareCreate(BaseModel):
    email: EmailStr
    expires_at: datetime | None = None


class ShareIndexEntry(BaseModel):
    """Recipient-side index record, keyed by recipient email."""

    share_id: str
    owner_user_id: str
    owner_display_name: str
    expires_at: datetime | None = None
    created_at: datetime


class SharedValue(BaseModel):
    name: str
    value: float
    unit: str
    category: str
    status: ValueStatus


class SharedEntry(BaseModel):
    id: str
    date: str
    lab_name: str | None = None
    values: list[SharedValue]


class SharedData(BaseModel):
    """Read-only view of a share owner's entries, annotated with status."""

    user_id: str
    display_name: str
    gender: Gender | None = None
    entries: list[SharedEntry]
