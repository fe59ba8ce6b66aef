"""
Permission service: cached resolution, assignment hooks and introspection.

One PermissionService is built per process (see main.py) and shared by the
request gates and the admin routes. Every mutation that can change a user's
resolved grants invalidates the cache before returning.
"""
import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authz.core import config
from authz.core.errors import NotFoundError
from authz.features.permissions.cache import PermissionCache
from authz.features.permissions.models import Role, RolePermission, TeamMembership, UserRole
from authz.features.permissions.policy import permission_key
from authz.features.permissions.resolver import PermissionResolver
from authz.features.permissions.store import PermissionStore
from authz.utils import get_logger


log = get_logger(__name__)


class PermissionService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Optional[PermissionCache] = None,
        resolver: Optional[PermissionResolver] = None,
    ):
        self.session_factory = session_factory
        if cache is None:
            cache = PermissionCache(ttl_seconds=config.PERMISSION_CACHE_TTL_MS / 1000)
        if resolver is None:
            resolver = PermissionResolver(session_factory)
        self.cache = cache
        self.resolver = resolver

    # ========================================================================
    # Resolution
    # ========================================================================

    async def get_user_permissions(self, user_id: str) -> frozenset[str]:
        """Return the user's dynamic permission set, loading it on a cache miss."""
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        # Shielded so a cancelled request still finishes the load for the next caller
        return await asyncio.shield(self._load(user_id))

    async def _load(self, user_id: str) -> frozenset[str]:
        generation = self.cache.generation(user_id)
        permissions = await self.resolver.resolve(user_id)
        self.cache.put(user_id, permissions, generation=generation)
        return permissions

    async def check_permission(self, user_id: str, resource: str, action: str) -> bool:
        """Dynamic graph only; the static role policy is applied by the gates."""
        permissions = await self.get_user_permissions(user_id)
        return permission_key(resource, action) in permissions

    # ========================================================================
    # User <-> Role
    # ========================================================================

    async def assign_role_to_user(self, user_id: str, role_id: str) -> tuple[UserRole, bool]:
        async with self.session_factory() as session:
            store = PermissionStore(session)
            if await store.get_user(user_id) is None:
                raise NotFoundError("User")
            if await store.get_role(role_id) is None:
                raise NotFoundError("Role")

            user_role, created = await store.find_or_create_user_role(user_id, role_id)

        self.clear_user_permission_cache(user_id)
        log.info("Assigned role %s to user %s (created=%s)", role_id, user_id, created)
        return user_role, created

    async def remove_role_from_user(self, user_id: str, role_id: str) -> bool:
        async with self.session_factory() as session:
            deleted = await PermissionStore(session).destroy_user_role(user_id, role_id)

        self.clear_user_permission_cache(user_id)
        log.info("Removed role %s from user %s (deleted=%s)", role_id, user_id, deleted)
        return deleted > 0

    # ========================================================================
    # Role <-> Permission
    # ========================================================================

    async def assign_permission_to_role(self, role_id: str, permission_id: str) -> tuple[RolePermission, bool]:
        async with self.session_factory() as session:
            store = PermissionStore(session)
            if await store.get_role(role_id) is None:
                raise NotFoundError("Role")
            if await store.get_permission(permission_id) is None:
                raise NotFoundError("Permission")

            role_permission, created = await store.find_or_create_role_permission(role_id, permission_id)

        self.cache.invalidate_role(role_id)
        log.info("Assigned permission %s to role %s (created=%s)", permission_id, role_id, created)
        return role_permission, created

    async def remove_permission_from_role(self, role_id: str, permission_id: str) -> bool:
        async with self.session_factory() as session:
            deleted = await PermissionStore(session).destroy_role_permission(role_id, permission_id)

        self.cache.invalidate_role(role_id)
        log.info("Removed permission %s from role %s (deleted=%s)", permission_id, role_id, deleted)
        return deleted > 0

    # ========================================================================
    # User <-> Team (no effect on permissions)
    # ========================================================================

    async def assign_user_to_team(self, user_id: str, team_id: str, is_lead: bool = False) -> tuple[TeamMembership, bool]:
        async with self.session_factory() as session:
            store = PermissionStore(session)
            if await store.get_user(user_id) is None:
                raise NotFoundError("User")
            if await store.get_team(team_id) is None:
                raise NotFoundError("Team")

            membership, created = await store.find_or_create_team_membership(user_id, team_id, is_lead)
            if not created and membership.is_lead != is_lead:
                membership = await store.set_team_lead(membership, is_lead)

        log.info("Assigned user %s to team %s (created=%s, lead=%s)", user_id, team_id, created, is_lead)
        return membership, created

    async def remove_user_from_team(self, user_id: str, team_id: str) -> bool:
        async with self.session_factory() as session:
            deleted = await PermissionStore(session).destroy_team_membership(user_id, team_id)

        log.info("Removed user %s from team %s (deleted=%s)", user_id, team_id, deleted)
        return deleted > 0

    # ========================================================================
    # Introspection (uncached)
    # ========================================================================

    async def get_user_roles(self, user_id: str) -> list[Role]:
        async with self.session_factory() as session:
            user = await PermissionStore(session).find_user_with_roles(user_id)
            return list(user.roles) if user else []

    async def get_user_teams(self, user_id: str) -> list[TeamMembership]:
        """Memberships carry the team plus the per-membership lead flag and join time."""
        async with self.session_factory() as session:
            return await PermissionStore(session).find_team_memberships(user_id)

    # ========================================================================
    # Cache control
    # ========================================================================

    def clear_user_permission_cache(self, user_id: str) -> None:
        self.cache.invalidate(user_id)

    def clear_all_permission_cache(self) -> None:
        self.cache.invalidate_all()
