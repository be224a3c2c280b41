from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import Unauthorized
from .models import UserEntity
from .repositories import Repository, get_repository
from .security import decode_access_token
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

_security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# PUBLIC_INTERFACE
def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_security),
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> UserEntity:
    """
    Resolve the bearer token to the calling user.

    Raises:
        HTTPException(401) if the header is missing, the token is invalid or
        expired, or the user no longer exists.
    """
    if creds is None or not creds.credentials:
        raise _unauthorized("Not authenticated")

    try:
        user_id = decode_access_token(creds.credentials, settings)
    except Unauthorized as e:
        logger.warning("Rejected bearer token: %s", e.message)
        raise _unauthorized(e.message) from e

    user = repo.get_user(user_id)
    if user is None:
        logger.warning("Token subject %s no longer exists", user_id)
        raise _unauthorized("User not found")
    return user
