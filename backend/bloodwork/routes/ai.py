"""AI doctor routes: chat about the caller's values and scan lab reports.

Chat and scan share one daily per-user request budget
(``settings.ai_daily_limit``).
"""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from openai import OpenAIError

from bloodwork.auth import verify_bearer_token
from bloodwork.config import settings
from bloodwork.schemas.ai import ChatHistory, ChatMessage, ChatRequest, ChatResponse, ScanResult
from bloodwork.services.catalog_store import ReferenceCatalog, get_catalog
from bloodwork.services.context_builder import build_system_prompt
from bloodwork.services.doctor import DoctorService, get_doctor_service, resolve_scan_result
from bloodwork.services.file_store import FileStore, get_file_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_SCAN_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "application/pdf"})


def get_doctor() -> DoctorService:
    """Doctor service dependency; 503 when the LLM is not configured."""
    try:
        return get_doctor_service()
    except ValueError as e:
        logger.error("AI doctor unavailable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured",
        )


def _enforce_rate_limit(store: FileStore, user_id: str) -> None:
    if not store.check_and_increment_ai_rate(user_id, settings.ai_daily_limit):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Daily limit of {settings.ai_daily_limit} AI requests reached",
        )


@router.get("/history", response_model=ChatHistory)
def get_history(
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> ChatHistory:
    """Get the caller's chat history."""
    return store.get_chat_history(user_id)


@router.delete("/history", status_code=status.HTTP_204_NO_CONTENT)
def clear_history(
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> None:
    """Clear the caller's chat history."""
    store.save_chat_history(user_id, ChatHistory(user_id=user_id))


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    catalog: ReferenceCatalog = Depends(get_catalog),
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
    doctor: DoctorService = Depends(get_doctor),
) -> ChatResponse:
    """Ask the AI doctor about the caller's values.

    The system prompt carries the caller's most recent entries annotated
    with their status. Both messages are persisted only on success.

    Raises:
        HTTPException: 429 over the daily limit, 503 on LLM errors.
    """
    await run_in_threadpool(_enforce_rate_limit, store, user_id)

    user_data = await run_in_threadpool(store.get_user_data, user_id)
    history = await run_in_threadpool(store.get_chat_history, user_id)
    system_prompt = build_system_prompt(user_data, catalog.values, settings.warning_buffer_ratio)

    user_message = ChatMessage(
        id=str(uuid.uuid4()),
        role="user",
        content=request.message,
        timestamp=datetime.now(timezone.utc),
    )

    try:
        reply = await doctor.chat(
            system_prompt,
            request.message,
            [{"role": m.role, "content": m.content} for m in history.messages],
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message cannot be empty",
        )
    except (OpenAIError, RuntimeError) as e:
        logger.error("AI chat failed for user %s: %s", user_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is currently unavailable. Please try again.",
        )

    assistant_message = ChatMessage(
        id=str(uuid.uuid4()),
        role="assistant",
        content=reply,
        timestamp=datetime.now(timezone.utc),
    )
    await run_in_threadpool(store.append_chat_messages, user_id, user_message, assistant_message)
    return ChatResponse(message=assistant_message, user_message=user_message)


@router.post("/scan", response_model=ScanResult)
async def scan(
    file: UploadFile = File(...),
    catalog: ReferenceCatalog = Depends(get_catalog),
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
    doctor: DoctorService = Depends(get_doctor),
) -> ScanResult:
    """Extract values from an uploaded lab report (JPEG, PNG, WebP or PDF).

    Extracted names are resolved against the catalog, exact then fuzzy.
    Nothing is saved; the client reviews the result and posts an entry.

    Raises:
        HTTPException: 400 on wrong type, 413 if too large, 429 over the
            daily limit, 422 if the report could not be read.
    """
    if file.content_type not in ALLOWED_SCAN_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only images (JPEG, PNG, WebP) and PDFs are allowed",
        )

    data = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="File exceeds 10 MB",
        )
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded",
        )

    await run_in_threadpool(_enforce_rate_limit, store, user_id)

    try:
        result = await doctor.scan(data, file.content_type, file.filename or "befund")
    except (OpenAIError, RuntimeError, ValueError) as e:
        logger.error("Scan failed for user %s: %s", user_id, e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Lab report could not be read: {e}",
        )

    return resolve_scan_result(result, catalog.values)
