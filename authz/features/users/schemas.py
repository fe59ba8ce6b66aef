"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from authz.features.permissions.policy import StaticRole


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """Schema for creating a new user."""
    role: StaticRole = Field(StaticRole.AGENT, description="Built-in role used by the static fallback policy")


class UserRoleUpdate(BaseModel):
    """Schema for changing a user's built-in role."""
    role: StaticRole


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    role: StaticRole
    is_active: bool
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)

