"""
Queries against the permission graph.

PermissionStore wraps one AsyncSession. Each method is a single atomic
operation from the caller's point of view; mutating methods commit before
returning.
"""
from typing import Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from authz.features.users.models import User
from authz.features.permissions.models import (
    Permission,
    Role,
    RolePermission,
    Team,
    TeamMembership,
    UserRole,
)


class PermissionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_role(self, role_id: str) -> Optional[Role]:
        return await self.db.get(Role, role_id)

    async def get_permission(self, permission_id: str) -> Optional[Permission]:
        return await self.db.get(Permission, permission_id)

    async def get_team(self, team_id: str) -> Optional[Team]:
        return await self.db.get(Team, team_id)

    async def find_user_with_roles_and_permissions(self, user_id: str) -> Optional[User]:
        """
        Load a user with every role it holds and every permission on those roles.

        Uses a selectinload chain so the number of queries is fixed no matter
        how many roles the user has.
        """
        stmt = (
            select(User)
            .where(User.id == user_id)
            .options(selectinload(User.roles).selectinload(Role.permissions))
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_user_with_roles(self, user_id: str) -> Optional[User]:
        stmt = select(User).where(User.id == user_id).options(selectinload(User.roles))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_team_memberships(self, user_id: str) -> list[TeamMembership]:
        """A user's memberships, oldest first, each with its team loaded."""
        stmt = (
            select(TeamMembership)
            .where(TeamMembership.user_id == user_id)
            .options(selectinload(TeamMembership.team))
            .order_by(TeamMembership.joined_at, TeamMembership.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_team_membership(self, user_id: str, team_id: str) -> Optional[TeamMembership]:
        stmt = select(TeamMembership).where(
            TeamMembership.user_id == user_id,
            TeamMembership.team_id == team_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # User <-> Role
    # ------------------------------------------------------------------

    async def find_or_create_user_role(self, user_id: str, role_id: str) -> tuple[UserRole, bool]:
        stmt = select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        existing = (await self.db.execute(stmt)).scalar_one_or_none()
        if existing is not None:
            return existing, False

        user_role = UserRole(user_id=user_id, role_id=role_id)
        self.db.add(user_role)
        await self.db.commit()
        await self.db.refresh(user_role)
        return user_role, True

    async def destroy_user_role(self, user_id: str, role_id: str) -> int:
        stmt = delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Role <-> Permission
    # ------------------------------------------------------------------

    async def find_or_create_role_permission(self, role_id: str, permission_id: str) -> tuple[RolePermission, bool]:
        stmt = select(RolePermission).where(
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        )
        existing = (await self.db.execute(stmt)).scalar_one_or_none()
        if existing is not None:
            return existing, False

        role_permission = RolePermission(role_id=role_id, permission_id=permission_id)
        self.db.add(role_permission)
        await self.db.commit()
        await self.db.refresh(role_permission)
        return role_permission, True

    async def destroy_role_permission(self, role_id: str, permission_id: str) -> int:
        stmt = delete(RolePermission).where(
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # User <-> Team
    # ------------------------------------------------------------------

    async def find_or_create_team_membership(
        self,
        user_id: str,
        team_id: str,
        is_lead: bool = False
    ) -> tuple[TeamMembership, bool]:
        existing = await self.find_team_membership(user_id, team_id)
        if existing is not None:
            return existing, False

        membership = TeamMembership(user_id=user_id, team_id=team_id, is_lead=is_lead)
        self.db.add(membership)
        await self.db.commit()
        await self.db.refresh(membership)
        return membership, True

    async def set_team_lead(self, membership: TeamMembership, is_lead: bool) -> TeamMembership:
        membership.is_lead = is_lead
        await self.db.commit()
        await self.db.refresh(membership)
        return membership

    async def destroy_team_membership(self, user_id: str, team_id: str) -> int:
        stmt = delete(TeamMembership).where(
            TeamMembership.user_id == user_id,
            TeamMembership.team_id == team_id,
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount
