"""
User model with ULID primary keys.
"""
from sqlalchemy import String, Boolean, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authz.core.database.base import Base, TimestampMixin, generate_ulid
from authz.features.permissions.policy import StaticRole


class User(Base, TimestampMixin):
    """
    User model representing authenticated users.
    
    `role` is the single built-in role consulted by the static fallback policy.
    Dynamic permissions come from the Role entities linked through `user_roles`.
    """
    __tablename__ = "users"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    
    role: Mapped[StaticRole] = mapped_column(
        Enum(StaticRole, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=StaticRole.AGENT,
        nullable=False,
        index=True,
    )
    
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    # Read path only; writes go through the UserRole join entity
    roles: Mapped[list["Role"]] = relationship(  # type: ignore
        "Role",
        secondary="user_roles",
        viewonly=True,
        lazy="raise",
    )
    
    @property
    def is_admin(self) -> bool:
        return self.role == StaticRole.ADMIN
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role})>"
