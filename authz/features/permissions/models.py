"""
Permission, Role, and Team models.

The permission graph is:
- User <-> Role through UserRole
- Role <-> Permission through RolePermission
- User <-> Team through TeamMembership (organizational only, grants nothing)

Join entities are mapped classes so assignments can be found-or-created and
destroyed one row at a time. The `secondary` relationships on the entities are
view-only read paths.
"""
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON, Text, DateTime, Boolean, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authz.core.database.base import Base, TimestampMixin, generate_ulid
from authz.features.permissions.policy import permission_key


# ============================================================================
# Join Entities
# ============================================================================

class UserRole(Base, TimestampMixin):
    """A user holding a dynamic role."""
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserRole(user_id={self.user_id}, role_id={self.role_id})>"


class RolePermission(Base, TimestampMixin):
    """A role carrying a permission."""
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    role_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    permission_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<RolePermission(role_id={self.role_id}, permission_id={self.permission_id})>"


class TeamMembership(Base, TimestampMixin):
    """A user belonging to a team, optionally as its lead."""
    __tablename__ = "team_memberships"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_memberships_team_user"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    team_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_lead: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    team: Mapped["Team"] = relationship("Team", lazy="raise")

    def __repr__(self) -> str:
        return f"<TeamMembership(team_id={self.team_id}, user_id={self.user_id}, is_lead={self.is_lead})>"


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    An atomic capability: one action on one resource.

    Examples:
    - resource="deals", action="create"
    - resource="reports", action="export"
    """
    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("resource", "action", name="uq_permissions_resource_action"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    resource: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def key(self) -> str:
        return permission_key(self.resource, self.action)

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, resource={self.resource}, action={self.action})>"


class Role(Base, TimestampMixin):
    """
    A named bundle of permissions.

    System roles (admin, manager, agent, assistant) are seeded and cannot be
    edited or removed through the API. Custom roles such as "Sales Lead" can.
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary="role_permissions",
        viewonly=True,
        lazy="selectin",
        order_by="Permission.resource",
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r})>"


class Team(Base, TimestampMixin):
    """A grouping of users for organizational queries."""
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name!r})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for tracking permission-related actions.

    Tracks who did what, when, and from where.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # e.g. action="assign", resource_type="user_role"
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
