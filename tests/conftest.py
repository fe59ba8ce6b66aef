"""
Shared fixtures: an isolated in-memory database, a permission cache driven by
a fake clock, and small factories for users, roles, permissions and teams.
"""
import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from authz.core.database.engine import init_db
from authz.features.permissions.cache import PermissionCache
from authz.features.permissions.models import Permission, Role, RolePermission, Team
from authz.features.permissions.policy import StaticRole
from authz.features.permissions.service import PermissionService
from authz.features.users.models import User


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubResolver:
    """Resolver returning a fixed set, optionally parked on an event."""

    def __init__(self, permissions=(), gate: asyncio.Event | None = None):
        self.permissions = frozenset(permissions)
        self.gate = gate
        self.calls = 0

    async def resolve(self, user_id: str) -> frozenset[str]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.permissions


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return PermissionCache(ttl_seconds=300.0, clock=clock)


@pytest.fixture
def service(session_factory, cache):
    return PermissionService(session_factory, cache)


@pytest.fixture
def make_user(session_factory):
    counter = {"n": 0}

    async def _make_user(role: StaticRole | str = StaticRole.AGENT, **kwargs) -> User:
        counter["n"] += 1
        async with session_factory() as session:
            user = User(
                email=kwargs.pop("email", f"user{counter['n']}@example.com"),
                name=kwargs.pop("name", f"User {counter['n']}"),
                role=StaticRole(role),
                **kwargs,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def make_permission(session_factory):
    async def _make_permission(resource: str, action: str) -> Permission:
        async with session_factory() as session:
            permission = Permission(resource=resource, action=action)
            session.add(permission)
            await session.commit()
            await session.refresh(permission)
            return permission

    return _make_permission


@pytest.fixture
def make_role(session_factory):
    async def _make_role(name: str, permissions: list[Permission] = (), is_system: bool = False) -> Role:
        async with session_factory() as session:
            role = Role(name=name, is_system=is_system)
            session.add(role)
            await session.flush()
            for permission in permissions:
                session.add(RolePermission(role_id=role.id, permission_id=permission.id))
            await session.commit()
            await session.refresh(role)
            return role

    return _make_role


@pytest.fixture
def make_team(session_factory):
    async def _make_team(name: str) -> Team:
        async with session_factory() as session:
            team = Team(name=name)
            session.add(team)
            await session.commit()
            await session.refresh(team)
            return team

    return _make_team
