"""Pydantic schemas."""

from bloodwork.schemas.ai import (
    ChatHistory,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ExtractedBloodValue,
    ScanResult,
)
from bloodwork.schemas.bloodvalues import (
    BloodEntry,
    BloodEntryCreate,
    BloodValue,
    DashboardSummary,
    HistoryPoint,
    ValueHistory,
    ValueSummaryItem,
)
from bloodwork.schemas.reference import (
    Gender,
    ReferenceDatabase,
    ReferenceValue,
    ReferenceValueCreate,
    StatusRequest,
    StatusResponse,
    ValueStatus,
)
from bloodwork.schemas.user import (
    ApiToken,
    Lifestyle,
    ProfileUpdate,
    Share,
    ShareCreate,
    SharedData,
    ShareIndexEntry,
    TokenCreate,
    TokenCreated,
    TokenInfo,
    UserData,
    UserProfileResponse,
)

__all__ = [
    # Reference catalog
    "Gender",
    "ReferenceDatabase",
    "ReferenceValue",
    "ReferenceValueCreate",
    "StatusRequest",
    "StatusResponse",
    "ValueStatus",
    # Blood values
    "BloodEntry",
    "BloodEntryCreate",
    "BloodValue",
    "DashboardSummary",
    "HistoryPoint",
    "ValueHistory",
    "ValueSummaryItem",
    # Users, tokens, shares
    "ApiToken",
    "Lifestyle",
    "ProfileUpdate",
    "Share",
    "ShareCreate",
    "SharedData",
    "ShareIndexEntry",
    "TokenCreate",
    "TokenCreated",
    "TokenInfo",
    "UserData",
    "UserProfileResponse",
    # AI
    "ChatHistory",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ExtractedBloodValue",
    "ScanResult",
]
