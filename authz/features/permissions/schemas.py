"""
Pydantic schemas for permission management.

Request and response models for permissions, roles, teams, assignments and
audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


def _lower_identifier(v: str) -> str:
    v = v.strip().lower()
    if ":" in v or "*" in v:
        raise ValueError("must not contain ':' or '*'")
    return v


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    resource: str = Field(..., min_length=1, max_length=100, description="Resource type (e.g., 'deals', 'properties')")
    action: str = Field(..., min_length=1, max_length=50, description="Action (e.g., 'create', 'read', 'list')")
    description: Optional[str] = Field(None, max_length=1000, description="Permission description")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""

    @field_validator("resource", "action")
    @classmethod
    def plain_identifier(cls, v: str) -> str:
        """Lowercase, and no separators or wildcards."""
        return _lower_identifier(v)


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: str
    key: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=50, description="Unique role name")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Role name must not be blank")
        return v


class RoleUpdate(BaseModel):
    """Schema for updating a role."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    is_system: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Team Schemas
# ============================================================================

class TeamCreate(BaseModel):
    """Schema for creating a team."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class TeamResponse(TeamCreate):
    """Schema for team response."""
    id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TeamUpdate(BaseModel):
    """Schema for updating a team."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None


class TeamMembershipResponse(BaseModel):
    """A user's membership in a team."""
    team_id: str
    user_id: str
    is_lead: bool
    joined_at: datetime
    team: TeamResponse

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignRoleToUser(BaseModel):
    """Schema for assigning a role to a user."""
    role_id: str = Field(..., description="Role ID")


class AssignPermissionToRole(BaseModel):
    """Schema for assigning a permission to a role."""
    permission_id: str = Field(..., description="Permission ID")


class AssignUserToTeam(BaseModel):
    """Schema for adding a user to a team."""
    team_id: str = Field(..., description="Team ID")
    is_lead: bool = Field(False, description="Whether the user leads the team")


class AssignmentResponse(BaseModel):
    """Result of a find-or-create assignment."""
    message: str
    created: bool
    id: str


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if a user holds a permission through their roles."""
    user_id: str = Field(..., description="User ID")
    resource: str = Field(..., description="Resource type")
    action: str = Field(..., description="Action")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool


class MyPermissionsResponse(BaseModel):
    """The caller's own resolved role permissions."""
    user_id: str
    role: str
    permissions: List[str] = []


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
