"""
Seed script to populate default permissions and roles.

Run this script after database initialization to create:
- One permission per resource/action pair
- The four system roles with their default permission bundles
- Optionally an admin user (set SEED_ADMIN_EMAIL), whose access token is logged

Usage:
    python -m scripts.seed_permissions
"""
import asyncio
import os
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authz.core.database.engine import AsyncSessionLocal, init_db
from authz.features.permissions.models import Permission, Role, RolePermission
from authz.features.permissions.policy import StaticRole, decide, permission_key
from authz.features.users.auth import create_access_token
from authz.features.users.models import User
from authz.utils import get_logger


log = get_logger(__name__)


RESOURCES = [
    "users",
    "teams",
    "properties",
    "contacts",
    "deals",
    "documents",
    "tasks",
    "reports",
    "analytics",
    "communications",
    "imports",
    "settings",
]

ACTIONS = ["create", "read", "update", "delete", "list"]

ROLE_DESCRIPTIONS = {
    StaticRole.ADMIN: "Administrator with full system access",
    StaticRole.MANAGER: "Manager with most permissions except system configuration",
    StaticRole.AGENT: "Agent with standard permissions",
    StaticRole.ASSISTANT: "Assistant with read-only permissions",
}


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create the resource x action permission grid.

    Returns:
        Dictionary mapping "resource:action" to Permission objects
    """
    log.info("Creating default permissions...")
    permissions_map: dict[str, Permission] = {}

    existing = (await db.execute(select(Permission))).scalars().all()
    for permission in existing:
        permissions_map[permission.key] = permission

    created = 0
    for resource in RESOURCES:
        for action in ACTIONS:
            key = permission_key(resource, action)
            if key in permissions_map:
                continue
            permission = Permission(
                resource=resource,
                action=action,
                description=f"{action.capitalize()} {resource}",
            )
            db.add(permission)
            permissions_map[key] = permission
            created += 1

    await db.commit()
    log.info("Created %d permissions (%d total)", created, len(permissions_map))
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, Permission]) -> None:
    """
    Create the system roles, each bundling the permissions its static policy
    grants over the seeded grid.
    """
    log.info("Creating default roles...")

    for static_role, description in ROLE_DESCRIPTIONS.items():
        stmt = select(Role).where(Role.name == static_role.value)
        if (await db.execute(stmt)).scalars().first():
            log.debug("Role '%s' already exists, skipping", static_role.value)
            continue

        role = Role(name=static_role.value, description=description, is_system=True)
        db.add(role)
        await db.flush()

        granted = [
            permission for permission in permissions_map.values()
            if decide(static_role, permission.resource, permission.action)
        ]
        for permission in granted:
            db.add(RolePermission(role_id=role.id, permission_id=permission.id))
        log.info("Created role '%s' with %d permissions", role.name, len(granted))

    await db.commit()


async def seed_admin(db: AsyncSession, email: str) -> User:
    """Create (or find) an admin user and log a bearer token for it."""
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None:
        user = User(email=email, name="Administrator", role=StaticRole.ADMIN)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        log.info("Created admin user %s", email)

    log.info("Admin token: %s", create_access_token(user.id))
    return user


async def main():
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            permissions_map = await seed_permissions(db)
            await seed_roles(db, permissions_map)

            admin_email = os.environ.get("SEED_ADMIN_EMAIL")
            if admin_email:
                await seed_admin(db, admin_email)
        except Exception:
            log.error("Error seeding permissions", exc_info=True)
            await db.rollback()
            raise

    log.info("Permission seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
