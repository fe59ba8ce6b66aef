"""
FastAPI dependencies for authentication.

`get_optional_user` never rejects; it yields None when there is no valid
identity so that the permission gates can raise UnauthorizedError themselves.
"""
from typing import Annotated, Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from authz.core.database.engine import get_db
from authz.core.errors import ForbiddenError, UnauthorizedError
from authz.features.users.models import User
from authz.features.users.auth import user_id_from_token


security = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Optional[User]:
    """
    Resolve the bearer token to a local user, or None.

    A token for an unknown user counts as no identity. A deactivated user is
    rejected outright.
    """
    user_id = user_id_from_token(credentials.credentials if credentials else None)
    if user_id is None:
        return None

    user = await db.get(User, user_id)
    if user is None:
        return None

    if not user.is_active:
        raise ForbiddenError("User account is deactivated")

    return user


async def get_current_user(
    user: Annotated[Optional[User], Depends(get_optional_user)]
) -> User:
    """
    Require an authenticated user.
    
    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user


async def get_current_admin_user(
    user: Annotated[User, Depends(get_current_user)]
) -> User:
    """Require the built-in admin role."""
    if not user.is_admin:
        raise ForbiddenError("Admin privileges required")
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
