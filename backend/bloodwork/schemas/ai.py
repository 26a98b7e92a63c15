"""Schemas for the AI doctor chat and the scan import.

``ScanResult`` doubles as the structured-output format the LLM must fill
when reading a lab report image or PDF.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

MAX_MESSAGE_LENGTH = 4000


class ChatMessage(BaseModel):
    """A persisted chat message."""

    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime


class ChatHistory(BaseModel):
    user_id: str
    messages: list[ChatMessage] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Request body for the chat endpoint."""

    message: str = Field(
        min_length=1,
        max_length=MAX_MESSAGE_LENGTH,
        description="The user's message",
    )


class ChatResponse(BaseModel):
    message: ChatMessage
    user_message: ChatMessage


class ExtractedBloodValue(BaseModel):
    """A value read off a lab report, before catalog resolution."""

    name: str = Field(description="Measurement name exactly as printed on the report")
    value: float = Field(description="Numeric result; use a dot as decimal separator")
    unit: str = Field(default="", description="Unit as printed on the report")
    category: str | None = Field(default=None, description="Panel or section heading, if any")
    short_name: str | None = None
    long_name: str | None = None
    ref_id: str | None = Field(
        default=None,
        description="Matched reference catalog id (filled by the backend, not the model)",
    )


class ScanResult(BaseModel):
    """Values extracted from one lab report."""

    date: str | None = Field(default=None, description="Sample date as YYYY-MM-DD, if printed")
    lab_name: str | None = Field(default=None, description="Name of the laboratory, if printed")
    values: list[ExtractedBloodValue] = Field(default_factory=list)
