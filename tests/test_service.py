"""
Tests for PermissionService: cached resolution, assignment hooks and
introspection.
"""
import asyncio

import pytest

from authz.core.errors import NotFoundError
from authz.features.permissions.cache import PermissionCache
from authz.features.permissions.service import PermissionService

from tests.conftest import StubResolver


MISSING_ID = "01HZZZZZZZZZZZZZZZZZZZZZZZ"


async def _wait_for(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0)
    await asyncio.wait_for(poll(), timeout)


class TestResolution:

    async def test_miss_populates_cache(self, service, make_user):
        user = await make_user()
        assert service.cache.get(user.id) is None
        assert await service.get_user_permissions(user.id) == frozenset()
        assert service.cache.get(user.id) == frozenset()

    async def test_hit_does_not_resolve(self, cache):
        resolver = StubResolver({"deals:read"})
        service = PermissionService(None, cache, resolver)

        await service.get_user_permissions("u1")
        await service.get_user_permissions("u1")

        assert resolver.calls == 1

    async def test_reload_after_ttl(self, cache, clock):
        resolver = StubResolver({"deals:read"})
        service = PermissionService(None, cache, resolver)

        await service.get_user_permissions("u1")
        clock.advance(300)
        await service.get_user_permissions("u1")

        assert resolver.calls == 2

    async def test_check_permission_is_dynamic_only(self, service, make_user):
        """An admin user with no roles holds nothing in the graph."""
        admin = await make_user(role="admin")
        assert await service.check_permission(admin.id, "deals", "read") is False

    async def test_check_permission(self, cache):
        service = PermissionService(None, cache, StubResolver({"reports:export"}))
        assert await service.check_permission("u1", "reports", "export") is True
        assert await service.check_permission("u1", "reports", "read") is False

    async def test_concurrent_first_requests_both_resolve(self, cache):
        gate = asyncio.Event()
        resolver = StubResolver({"deals:read"}, gate=gate)
        service = PermissionService(None, cache, resolver)

        first = asyncio.ensure_future(service.get_user_permissions("u1"))
        second = asyncio.ensure_future(service.get_user_permissions("u1"))
        await _wait_for(lambda: resolver.calls == 2)
        gate.set()

        assert await first == await second == frozenset({"deals:read"})
        assert cache.get("u1") == frozenset({"deals:read"})

    async def test_cancelled_request_still_populates_cache(self, cache):
        gate = asyncio.Event()
        resolver = StubResolver({"deals:read"}, gate=gate)
        service = PermissionService(None, cache, resolver)

        request = asyncio.ensure_future(service.get_user_permissions("u1"))
        await _wait_for(lambda: resolver.calls == 1)
        request.cancel()
        with pytest.raises(asyncio.CancelledError):
            await request

        gate.set()
        await _wait_for(lambda: cache.get("u1") is not None)
        assert cache.get("u1") == frozenset({"deals:read"})

    async def test_load_racing_invalidation_is_not_cached(self, cache):
        gate = asyncio.Event()
        resolver = StubResolver({"deals:read"}, gate=gate)
        service = PermissionService(None, cache, resolver)

        request = asyncio.ensure_future(service.get_user_permissions("u1"))
        await _wait_for(lambda: resolver.calls == 1)
        service.clear_user_permission_cache("u1")
        gate.set()

        assert await request == frozenset({"deals:read"})
        assert cache.get("u1") is None

    async def test_unrelated_invalidation_keeps_load(self, cache):
        gate = asyncio.Event()
        resolver = StubResolver({"deals:read"}, gate=gate)
        service = PermissionService(None, cache, resolver)

        request = asyncio.ensure_future(service.get_user_permissions("u1"))
        await _wait_for(lambda: resolver.calls == 1)
        service.clear_user_permission_cache("someone-else")
        gate.set()

        assert await request == frozenset({"deals:read"})
        assert cache.get("u1") == frozenset({"deals:read"})


class TestUserRoles:

    async def test_assign_invalidates_stale_entry(self, service, make_user, make_role, make_permission):
        perm = await make_permission("reports", "export")
        role = await make_role("Exporter", [perm])
        user = await make_user(role="assistant")

        assert await service.check_permission(user.id, "reports", "export") is False
        assert service.cache.get(user.id) == frozenset()

        user_role, created = await service.assign_role_to_user(user.id, role.id)

        assert created is True
        assert user_role.user_id == user.id
        assert service.cache.get(user.id) is None
        assert await service.check_permission(user.id, "reports", "export") is True

    async def test_assign_twice_is_idempotent(self, service, make_user, make_role):
        role = await make_role("Sales Lead")
        user = await make_user()
        first, created = await service.assign_role_to_user(user.id, role.id)
        second, created_again = await service.assign_role_to_user(user.id, role.id)
        assert created is True
        assert created_again is False
        assert first.id == second.id

    async def test_assign_unknown_user(self, service, make_role):
        role = await make_role("Sales Lead")
        with pytest.raises(NotFoundError, match="User not found"):
            await service.assign_role_to_user(MISSING_ID, role.id)

    async def test_assign_unknown_role(self, service, make_user):
        user = await make_user()
        with pytest.raises(NotFoundError, match="Role not found"):
            await service.assign_role_to_user(user.id, MISSING_ID)

    async def test_only_that_user_invalidated(self, service, make_user, make_role):
        role = await make_role("Sales Lead")
        user = await make_user()
        other = await make_user()
        await service.get_user_permissions(other.id)

        await service.assign_role_to_user(user.id, role.id)

        assert service.cache.get(other.id) == frozenset()

    async def test_remove_revokes(self, service, make_user, make_role, make_permission):
        perm = await make_permission("deals", "delete")
        role = await make_role("Closer", [perm])
        user = await make_user()
        await service.assign_role_to_user(user.id, role.id)
        assert await service.check_permission(user.id, "deals", "delete") is True

        assert await service.remove_role_from_user(user.id, role.id) is True
        assert await service.check_permission(user.id, "deals", "delete") is False

    async def test_remove_missing_assignment(self, service, make_user, make_role):
        role = await make_role("Closer")
        user = await make_user()
        assert await service.remove_role_from_user(user.id, role.id) is False

    async def test_get_user_roles(self, service, make_user, make_role):
        a = await make_role("A")
        b = await make_role("B")
        user = await make_user()
        await service.assign_role_to_user(user.id, a.id)
        await service.assign_role_to_user(user.id, b.id)

        roles = await service.get_user_roles(user.id)

        assert sorted(r.name for r in roles) == ["A", "B"]

    async def test_get_user_roles_unknown_user(self, service):
        assert await service.get_user_roles(MISSING_ID) == []


class TestRolePermissions:

    async def test_assign_invalidates_everyone(self, service, make_user, make_role, make_permission):
        perm = await make_permission("deals", "create")
        role = await make_role("Sales Lead")
        holder = await make_user()
        bystander = await make_user()
        await service.assign_role_to_user(holder.id, role.id)
        await service.get_user_permissions(holder.id)
        await service.get_user_permissions(bystander.id)

        _, created = await service.assign_permission_to_role(role.id, perm.id)

        assert created is True
        assert len(service.cache) == 0
        assert await service.check_permission(holder.id, "deals", "create") is True
        assert await service.check_permission(bystander.id, "deals", "create") is False

    async def test_assign_unknown_permission(self, service, make_role):
        role = await make_role("Sales Lead")
        with pytest.raises(NotFoundError, match="Permission not found"):
            await service.assign_permission_to_role(role.id, MISSING_ID)

    async def test_assign_unknown_role(self, service, make_permission):
        perm = await make_permission("deals", "create")
        with pytest.raises(NotFoundError, match="Role not found"):
            await service.assign_permission_to_role(MISSING_ID, perm.id)

    async def test_remove_revokes(self, service, make_user, make_role, make_permission):
        perm = await make_permission("deals", "create")
        role = await make_role("Sales Lead", [perm])
        user = await make_user()
        await service.assign_role_to_user(user.id, role.id)
        assert await service.check_permission(user.id, "deals", "create") is True

        assert await service.remove_permission_from_role(role.id, perm.id) is True
        assert await service.check_permission(user.id, "deals", "create") is False
        assert await service.remove_permission_from_role(role.id, perm.id) is False


class TestTeams:

    async def test_assign_and_list(self, service, make_user, make_team):
        team = await make_team("North")
        user = await make_user()

        membership, created = await service.assign_user_to_team(user.id, team.id, is_lead=True)

        assert created is True
        assert membership.is_lead is True
        memberships = await service.get_user_teams(user.id)
        assert [m.team.name for m in memberships] == ["North"]
        assert memberships[0].is_lead is True
        assert memberships[0].joined_at is not None

    async def test_reassign_updates_lead_flag(self, service, make_user, make_team):
        team = await make_team("North")
        user = await make_user()
        await service.assign_user_to_team(user.id, team.id, is_lead=False)

        membership, created = await service.assign_user_to_team(user.id, team.id, is_lead=True)

        assert created is False
        assert membership.is_lead is True
        [listed] = await service.get_user_teams(user.id)
        assert listed.is_lead is True

    async def test_unknown_team(self, service, make_user):
        user = await make_user()
        with pytest.raises(NotFoundError, match="Team not found"):
            await service.assign_user_to_team(user.id, MISSING_ID)

    async def test_team_changes_leave_cache_alone(self, service, make_user, make_team):
        team = await make_team("North")
        user = await make_user()
        await service.get_user_permissions(user.id)
        generation = service.cache.generation(user.id)

        await service.assign_user_to_team(user.id, team.id)
        await service.remove_user_from_team(user.id, team.id)

        assert service.cache.generation(user.id) == generation
        assert service.cache.get(user.id) == frozenset()

    async def test_remove(self, service, make_user, make_team):
        team = await make_team("North")
        user = await make_user()
        await service.assign_user_to_team(user.id, team.id)

        assert await service.remove_user_from_team(user.id, team.id) is True
        assert await service.get_user_teams(user.id) == []
        assert await service.remove_user_from_team(user.id, team.id) is False


class TestDefaults:

    def test_default_cache_uses_configured_ttl(self, session_factory):
        service = PermissionService(session_factory)
        assert isinstance(service.cache, PermissionCache)
        assert service.cache.ttl_seconds == 300.0

    def test_injected_empty_cache_is_kept(self, session_factory, clock):
        cache = PermissionCache(ttl_seconds=1.0, clock=clock)
        assert len(cache) == 0

        service = PermissionService(session_factory, cache)

        assert service.cache is cache
        assert service.cache.ttl_seconds == 1.0

    def test_injected_resolver_is_kept(self, session_factory):
        resolver = StubResolver()
        assert PermissionService(session_factory, resolver=resolver).resolver is resolver
