"""
Bearer token handling.

Tokens are HS256 JWTs whose `sub` claim is the local user id.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from authz.core import config
from authz.core.errors import UnauthorizedError


def create_access_token(user_id: str, expires_in: timedelta = timedelta(hours=24)) -> str:
    """Issue a signed token for `user_id`. Used by the seed script and tests."""
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_jwt_token(token: str) -> dict:
    """
    Verify a JWT and return its payload.
    
    Raises:
        UnauthorizedError: If the token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise UnauthorizedError(f"Invalid token: {e}")


def user_id_from_token(token: Optional[str]) -> Optional[str]:
    """Return the token's subject, or None when there is no usable token."""
    if not token:
        return None
    try:
        return verify_jwt_token(token).get("sub")
    except UnauthorizedError:
        return None
