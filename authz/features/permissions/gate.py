"""
Authorization gates.

Each gate checks the dynamic permission graph first and then applies its own
named fallback when the graph does not grant:

- authorize_permission: FULL_STATIC_POLICY, the whole static role table
- authorize_any_permission: ADMIN_ONLY
- authorize_all_permissions: ADMIN_ONLY, per permission

The any-of and all-of gates deliberately do not consult the manager, agent or
assistant tables. Changing that would change who gets in.

A missing identity always raises UnauthorizedError before any permission is
looked at. Denials name only the permission that was required.
"""
from typing import Callable, Iterable, Optional, Protocol

from authz.core.errors import ForbiddenError, UnauthorizedError
from authz.features.permissions.policy import StaticRole, decide, parse_role, split_permission_key
from authz.features.permissions.service import PermissionService
from authz.utils import get_logger


log = get_logger(__name__)


class Identity(Protocol):
    id: str
    role: object


Fallback = Callable[[Identity, str, str], bool]


def full_static_policy(user: Identity, resource: str, action: str) -> bool:
    return decide(user.role, resource, action)


def admin_only(user: Identity, resource: Optional[str] = None, action: Optional[str] = None) -> bool:
    return parse_role(user.role) is StaticRole.ADMIN


FULL_STATIC_POLICY: Fallback = full_static_policy
ADMIN_ONLY = admin_only


def _require_identity(user: Optional[Identity]) -> Identity:
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user


async def authorize_permission(
    service: PermissionService,
    user: Optional[Identity],
    resource: str,
    action: str,
) -> Identity:
    """Allow if the graph grants resource:action, else if the user's static role does."""
    user = _require_identity(user)

    if await service.check_permission(user.id, resource, action):
        log.debug("User %s granted %s:%s via roles", user.id, resource, action)
        return user

    if FULL_STATIC_POLICY(user, resource, action):
        log.debug("User %s granted %s:%s via static role %s", user.id, resource, action, user.role)
        return user

    log.info("User %s denied %s:%s", user.id, resource, action)
    raise ForbiddenError(f"Insufficient permissions for {action} on {resource}")


async def authorize_any_permission(
    service: PermissionService,
    user: Optional[Identity],
    permissions: Iterable[str],
) -> Identity:
    """Allow on the first graph-granted permission, else only if the user is an admin."""
    user = _require_identity(user)
    permissions = list(permissions)

    for permission in permissions:
        resource, action = split_permission_key(permission)
        if await service.check_permission(user.id, resource, action):
            log.debug("User %s granted %s via roles", user.id, permission)
            return user

    # Admin-only on purpose, see module docstring
    if ADMIN_ONLY(user):
        return user

    log.info("User %s denied any of %s", user.id, permissions)
    raise ForbiddenError("Insufficient permissions for this action")


async def authorize_all_permissions(
    service: PermissionService,
    user: Optional[Identity],
    permissions: Iterable[str],
) -> Identity:
    """Allow only if every permission is graph-granted or the user is an admin. First miss wins."""
    user = _require_identity(user)

    for permission in permissions:
        resource, action = split_permission_key(permission)
        if await service.check_permission(user.id, resource, action):
            continue
        if ADMIN_ONLY(user, resource, action):
            continue
        log.info("User %s denied, missing %s", user.id, permission)
        raise ForbiddenError(f"Insufficient permissions for this action (missing {permission})")

    return user
