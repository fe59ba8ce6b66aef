"""
Flatten a user's dynamic roles into a set of "resource:action" strings.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authz.features.permissions.policy import permission_key
from authz.features.permissions.store import PermissionStore
from authz.utils import get_logger


log = get_logger(__name__)

EMPTY: frozenset[str] = frozenset()


class PermissionResolver:
    """
    Computes the flattened permission set for a user.

    Never raises. A missing user, an unreachable store or malformed rows all
    resolve to the empty set, so callers fall through to deny.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def resolve(self, user_id: str) -> frozenset[str]:
        try:
            async with self.session_factory() as session:
                user = await PermissionStore(session).find_user_with_roles_and_permissions(user_id)
                if user is None:
                    log.debug("User %s not found, resolving to no permissions", user_id)
                    return EMPTY

                return frozenset(
                    permission_key(permission.resource, permission.action)
                    for role in user.roles
                    for permission in role.permissions
                )
        except Exception:
            log.exception("Error resolving permissions for user %s", user_id)
            return EMPTY
