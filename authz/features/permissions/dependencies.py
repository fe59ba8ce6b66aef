"""
FastAPI dependencies for route protection and audit logging.

Usage:
    @router.post("/deals")
    async def create_deal(user: User = Depends(require_permission("deals", "create"))):
        ...

    @router.get("/reports")
    async def reports(user: User = Depends(require_any_permission(["reports:read", "reports:export"]))):
        ...
"""
from typing import Any, Dict, List, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from authz.features.users.dependencies import get_optional_user
from authz.features.users.models import User
from authz.features.permissions.gate import (
    authorize_all_permissions,
    authorize_any_permission,
    authorize_permission,
)
from authz.features.permissions.models import AuditLog
from authz.features.permissions.service import PermissionService
from authz.utils import get_logger


log = get_logger(__name__)


def get_permission_service(request: Request) -> PermissionService:
    """The process-wide PermissionService built at app start-up."""
    return request.app.state.permission_service


# ============================================================================
# Gate Dependencies
# ============================================================================

def require_permission(resource: str, action: str):
    """
    Dependency requiring `resource:action` from the user's roles or, failing
    that, from the user's built-in role policy.

    Returns the current user. Raises UnauthorizedError (401) without an
    identity and ForbiddenError (403) when denied.
    """
    async def permission_dependency(
        service: PermissionService = Depends(get_permission_service),
        current_user: Optional[User] = Depends(get_optional_user)
    ) -> User:
        return await authorize_permission(service, current_user, resource, action)

    return permission_dependency


def require_any_permission(permissions: List[str]):
    """
    Dependency requiring any one of `permissions` ("resource:action") from the
    user's roles. Only admins get in without a matching role permission.
    """
    async def permission_dependency(
        service: PermissionService = Depends(get_permission_service),
        current_user: Optional[User] = Depends(get_optional_user)
    ) -> User:
        return await authorize_any_permission(service, current_user, permissions)

    return permission_dependency


def require_all_permissions(permissions: List[str]):
    """
    Dependency requiring every one of `permissions`, checked in order. Each
    passes if granted by the user's roles or if the user is an admin.
    """
    async def permission_dependency(
        service: PermissionService = Depends(get_permission_service),
        current_user: Optional[User] = Depends(get_optional_user)
    ) -> User:
        return await authorize_all_permissions(service, current_user, permissions)

    return permission_dependency


# ============================================================================
# Audit Logging
# ============================================================================

async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None
) -> AuditLog:
    """
    Record an administrative RBAC action.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "create", "assign", "remove")
        resource_type: Type of resource (e.g., "role", "user_role", "team_membership")
        resource_id: ID of the resource
        details: Additional details
        request: Incoming request, for client address and user agent
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    log.info("Audit: user=%s action=%s resource=%s:%s", user_id, action, resource_type, resource_id)

    return audit_log
