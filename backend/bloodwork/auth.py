"""Bearer token authentication against personal API tokens."""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bloodwork.config import settings
from bloodwork.services.file_store import FileStore, get_file_store

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def verify_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    store: FileStore = Depends(get_file_store),
) -> str:
    """Validate a bearer token against the API token index.

    When ``DEV_AUTO_LOGIN_USER`` is configured, requests without a token
    authenticate as that user.

    Returns:
        The authenticated user_id.

    Raises:
        HTTPException: 401 if token is missing or unknown.
    """
    if credentials is None:
        if settings.dev_auto_login_user:
            return settings.dev_auto_login_user
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
        )

    user_id = store.resolve_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or revoked token",
        )

    return user_id


async def require_admin(user_id: str = Depends(verify_bearer_token)) -> str:
    """Restrict a route to users listed in ``ADMIN_USER_IDS``.

    Raises:
        HTTPException: 403 if the user is not an admin.
    """
    if user_id not in settings.admin_ids:
        logger.warning("Non-admin user %s attempted an admin operation", user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user_id
