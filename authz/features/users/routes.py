"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authz.core.database.engine import get_db
from authz.core.errors import ConflictError, NotFoundError
from authz.features.users.models import User
from authz.features.users.schemas import UserCreate, UserResponse, UserRoleUpdate
from authz.features.users.dependencies import get_current_user, get_current_admin_user


router = APIRouter(tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_in: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(get_current_admin_user)]
):
    """Create a user (admin only)."""
    existing = await db.execute(select(User).where(User.email == user_in.email))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("User with this email already exists")

    user = User(**user_in.model_dump())
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@router.put("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: str,
    update: UserRoleUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(get_current_admin_user)]
):
    """
    Change a user's built-in role (admin only).

    The static role is read from the user record on every check and is never
    cached, so no invalidation is needed.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User")

    user.role = update.role
    await db.commit()
    await db.refresh(user)
    return user

