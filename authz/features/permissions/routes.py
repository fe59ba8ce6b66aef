"""
Permission management API routes.

Role, permission and team administration plus assignment endpoints. All
assignment changes go through PermissionService so the permission cache is
invalidated before the response is sent.
"""
from typing import List
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from authz.core.database.engine import get_db
from authz.core.errors import AppError, ConflictError, NotFoundError
from authz.features.users.dependencies import get_current_user, get_current_admin_user
from authz.features.users.models import User
from authz.features.permissions.models import (
    AuditLog,
    Permission,
    Role,
    RolePermission,
    Team,
    TeamMembership,
    UserRole,
)
from authz.features.permissions.schemas import (
    AssignmentResponse,
    AssignPermissionToRole,
    AssignRoleToUser,
    AssignUserToTeam,
    AuditLogResponse,
    MyPermissionsResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    RoleWithPermissions,
    TeamCreate,
    TeamMembershipResponse,
    TeamResponse,
    TeamUpdate,
)
from authz.features.permissions.dependencies import create_audit_log, get_permission_service
from authz.features.permissions.service import PermissionService
from authz.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _get_role_or_404(db: AsyncSession, role_id: str) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role")
    return role


# ============================================================================
# Permission Routes
# ============================================================================

@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a new permission (admin only)."""
    db_permission = Permission(**permission.model_dump())
    db.add(db_permission)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Permission {permission.resource}:{permission.action} already exists")
    await db.refresh(db_permission)

    await create_audit_log(
        db, current_user.id, "create", "permission", db_permission.id,
        details={"key": db_permission.key}, request=request
    )
    return db_permission


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """List all permissions ordered by resource and action (admin only)."""
    stmt = select(Permission).order_by(Permission.resource, Permission.action)
    result = await db.execute(stmt)
    return result.scalars().all()


# ============================================================================
# Role Routes
# ============================================================================

@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a custom role (admin only)."""
    db_role = Role(**role.model_dump())
    db.add(db_role)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Role with this name already exists")
    await db.refresh(db_role)

    await create_audit_log(
        db, current_user.id, "create", "role", db_role.id,
        details=role.model_dump(), request=request
    )
    return db_role


@router.get("/roles", response_model=List[RoleWithPermissions])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """List all roles with their permissions, newest first (admin only)."""
    stmt = select(Role).order_by(Role.created_at.desc())
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/roles/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Get a role with its permissions (admin only)."""
    return await _get_role_or_404(db, role_id)


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Rename or describe a custom role (admin only). System roles are fixed."""
    db_role = await _get_role_or_404(db, role_id)
    if db_role.is_system:
        raise AppError("Cannot update system roles", status.HTTP_400_BAD_REQUEST)

    update_data = role_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(db_role, key, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Role with this name already exists")
    await db.refresh(db_role)

    await create_audit_log(
        db, current_user.id, "update", "role", role_id,
        details=update_data, request=request
    )
    return db_role


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Delete a custom role and every assignment of it (admin only)."""
    db_role = await _get_role_or_404(db, role_id)
    if db_role.is_system:
        raise AppError("Cannot delete system roles", status.HTTP_400_BAD_REQUEST)

    role_name = db_role.name
    await db.execute(delete(UserRole).where(UserRole.role_id == role_id))
    await db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
    await db.delete(db_role)
    await db.commit()

    service.cache.invalidate_role(role_id)

    await create_audit_log(
        db, current_user.id, "delete", "role", role_id,
        details={"name": role_name}, request=request
    )
    return None


@router.post("/roles/{role_id}/permissions", response_model=AssignmentResponse)
async def assign_permission_to_role(
    role_id: str,
    assignment: AssignPermissionToRole,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Grant a permission to a role (admin only)."""
    role_permission, created = await service.assign_permission_to_role(role_id, assignment.permission_id)

    await create_audit_log(
        db, current_user.id, "assign", "role_permission", role_permission.id,
        details={"role_id": role_id, "permission_id": assignment.permission_id}, request=request
    )
    return AssignmentResponse(
        message="Permission assigned successfully" if created else "Role already has this permission",
        created=created,
        id=role_permission.id,
    )


@router.delete("/roles/{role_id}/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_permission_from_role(
    role_id: str,
    permission_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Revoke a permission from a role (admin only)."""
    if not await service.remove_permission_from_role(role_id, permission_id):
        raise NotFoundError("Permission assignment")

    await create_audit_log(
        db, current_user.id, "remove", "role_permission", None,
        details={"role_id": role_id, "permission_id": permission_id}, request=request
    )
    return None


# ============================================================================
# Team Routes
# ============================================================================

@router.post("/teams", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    team: TeamCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a team (admin only)."""
    db_team = Team(**team.model_dump())
    db.add(db_team)
    await db.commit()
    await db.refresh(db_team)

    await create_audit_log(
        db, current_user.id, "create", "team", db_team.id,
        details=team.model_dump(), request=request
    )
    return db_team


@router.get("/teams", response_model=List[TeamResponse])
async def list_teams(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """List teams (admin only)."""
    result = await db.execute(select(Team).order_by(Team.name))
    return result.scalars().all()


@router.put("/teams/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: str,
    team_update: TeamUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Rename, describe or deactivate a team (admin only)."""
    db_team = await db.get(Team, team_id)
    if db_team is None:
        raise NotFoundError("Team")

    update_data = team_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(db_team, key, value)

    await db.commit()
    await db.refresh(db_team)

    await create_audit_log(
        db, current_user.id, "update", "team", team_id,
        details=update_data, request=request
    )
    return db_team


@router.delete("/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(
    team_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a team and its memberships (admin only). Grants are unaffected."""
    db_team = await db.get(Team, team_id)
    if db_team is None:
        raise NotFoundError("Team")

    team_name = db_team.name
    await db.execute(delete(TeamMembership).where(TeamMembership.team_id == team_id))
    await db.delete(db_team)
    await db.commit()

    await create_audit_log(
        db, current_user.id, "delete", "team", team_id,
        details={"name": team_name}, request=request
    )
    return None


# ============================================================================
# User Assignment Routes
# ============================================================================

@router.get("/users/{user_id}/roles", response_model=List[RoleWithPermissions])
async def get_user_roles(
    user_id: str,
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Roles held by a user, read straight from the store (admin only)."""
    return await service.get_user_roles(user_id)


@router.post("/users/{user_id}/roles", response_model=AssignmentResponse)
async def assign_role_to_user(
    user_id: str,
    assignment: AssignRoleToUser,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Give a user a role (admin only)."""
    user_role, created = await service.assign_role_to_user(user_id, assignment.role_id)

    await create_audit_log(
        db, current_user.id, "assign", "user_role", user_role.id,
        details={"user_id": user_id, "role_id": assignment.role_id}, request=request
    )
    return AssignmentResponse(
        message="Role assigned successfully" if created else "User already has this role",
        created=created,
        id=user_role.id,
    )


@router.delete("/users/{user_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role_from_user(
    user_id: str,
    role_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Take a role away from a user (admin only)."""
    if not await service.remove_role_from_user(user_id, role_id):
        raise NotFoundError("Role assignment")

    await create_audit_log(
        db, current_user.id, "remove", "user_role", None,
        details={"user_id": user_id, "role_id": role_id}, request=request
    )
    return None


@router.get("/users/{user_id}/teams", response_model=List[TeamMembershipResponse])
async def get_user_teams(
    user_id: str,
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """A user's team memberships with their lead flags (admin only)."""
    return await service.get_user_teams(user_id)


@router.post("/users/{user_id}/teams", response_model=AssignmentResponse)
async def assign_user_to_team(
    user_id: str,
    assignment: AssignUserToTeam,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Add a user to a team, or update their lead flag (admin only)."""
    membership, created = await service.assign_user_to_team(user_id, assignment.team_id, assignment.is_lead)

    await create_audit_log(
        db, current_user.id, "assign", "team_membership", membership.id,
        details={"user_id": user_id, "team_id": assignment.team_id, "is_lead": assignment.is_lead},
        request=request
    )
    return AssignmentResponse(
        message="User assigned to team successfully" if created else "User already in team",
        created=created,
        id=membership.id,
    )


@router.delete("/users/{user_id}/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_user_from_team(
    user_id: str,
    team_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Remove a user from a team (admin only)."""
    if not await service.remove_user_from_team(user_id, team_id):
        raise NotFoundError("Team membership")

    await create_audit_log(
        db, current_user.id, "remove", "team_membership", None,
        details={"user_id": user_id, "team_id": team_id}, request=request
    )
    return None


# ============================================================================
# Permission Check Routes
# ============================================================================

@router.get("/me/permissions", response_model=MyPermissionsResponse)
async def get_my_permissions(
    current_user: User = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service)
):
    """The caller's own role-granted permissions."""
    permissions = await service.get_user_permissions(current_user.id)
    return MyPermissionsResponse(
        user_id=current_user.id,
        role=current_user.role.value,
        permissions=sorted(permissions),
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    current_user: User = Depends(get_current_admin_user),
    service: PermissionService = Depends(get_permission_service)
):
    """Whether a user's roles grant resource:action; static role policy not applied (admin only)."""
    has_permission = await service.check_permission(check.user_id, check.resource, check.action)
    return PermissionCheckResponse(has_permission=has_permission)


@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def list_audit_logs(
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Most recent RBAC audit entries (admin only)."""
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()
