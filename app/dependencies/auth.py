"""
Owner resolution for the share and export management routes.

Public share pages and public downloads never use this: they are
addressed by opaque uuid only.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import AuthorizationError
from app.models.user import User
from app.services.auth import AuthService
from app.utils.logger import log_warning
from app.utils.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(reason: str, **context) -> HTTPException:
    log_warning("Owner authentication failed", event="auth", reason=reason, **context)
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    The account whose shares and exports are being managed.

    Raises:
        HTTPException: 401 for a missing, invalid or expired token, or an unknown account
        AuthorizationError: 403 for a deactivated account
    """
    if credentials is None:
        raise _unauthorized("no_token")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("invalid_or_expired_token")

    owner = await AuthService(db).get_user_by_id(payload.sub)
    if owner is None:
        raise _unauthorized("unknown_owner", user_id=payload.sub)
    if not owner.is_active:
        log_warning("Deactivated owner rejected", event="auth", user_id=owner.id)
        raise AuthorizationError("This account is deactivated.")
    return owner
