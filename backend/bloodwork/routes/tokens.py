"""Personal API token routes.

Tokens are shown once on creation; only their sha256 hash is stored, both
on the user record and in the global token index used for authentication.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from bloodwork.auth import verify_bearer_token
from bloodwork.schemas.user import MAX_TOKENS_PER_USER, TokenCreate, TokenCreated, TokenInfo
from bloodwork.services.file_store import FileStore, get_file_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.get("", response_model=list[TokenInfo])
def list_tokens(
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> list[TokenInfo]:
    """List the caller's tokens without their secrets."""
    data = store.get_user_data(user_id)
    return [TokenInfo.model_validate(token.model_dump()) for token in data.api_tokens]


@router.post("", response_model=TokenCreated, status_code=status.HTTP_201_CREATED)
def create_token(
    request: TokenCreate,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> TokenCreated:
    """Create a named token.

    Returns:
        Token metadata plus the plaintext secret, which is never shown again.

    Raises:
        HTTPException: 400 if the user already has the maximum number of tokens.
    """
    if len(store.get_user_data(user_id).api_tokens) >= MAX_TOKENS_PER_USER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_TOKENS_PER_USER} tokens per user",
        )

    token, secret = store.issue_api_token(user_id, request.name)
    return TokenCreated(
        id=token.id,
        name=token.name,
        token_prefix=token.token_prefix,
        created_at=token.created_at,
        token=secret,
    )


@router.delete("/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_token(
    token_id: str,
    store: FileStore = Depends(get_file_store),
    user_id: str = Depends(verify_bearer_token),
) -> None:
    """Revoke a token; it stops authenticating immediately.

    Raises:
        HTTPException: 404 if token not found.
    """
    data = store.get_user_data(user_id)
    token = next((t for t in data.api_tokens if t.id == token_id), None)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Token not found",
        )

    data.api_tokens = [t for t in data.api_tokens if t.id != token_id]
    store.save_user_data(data)
    store.revoke_token(token.token_hash)
    logger.info("Revoked API token %s for user %s", token_id, user_id)
