"""
Tests for the authorization gates.
"""
from types import SimpleNamespace

import pytest

from authz.core.errors import ForbiddenError, UnauthorizedError
from authz.features.permissions.gate import (
    authorize_all_permissions,
    authorize_any_permission,
    authorize_permission,
)
from authz.features.permissions.service import PermissionService

from tests.conftest import StubResolver


def _user(role, user_id="u1"):
    return SimpleNamespace(id=user_id, role=role)


@pytest.fixture
def graph(cache):
    """Service whose dynamic graph grants a fixed set to every user."""
    def _graph(*permissions):
        return PermissionService(None, cache, StubResolver(permissions))
    return _graph


class TestUnauthenticated:

    @pytest.mark.parametrize("resource,action", [("deals", "read"), ("settings", "delete"), ("", "")])
    async def test_require_permission_without_identity(self, graph, resource, action):
        with pytest.raises(UnauthorizedError):
            await authorize_permission(graph("deals:read"), None, resource, action)

    async def test_any_without_identity(self, graph):
        with pytest.raises(UnauthorizedError):
            await authorize_any_permission(graph("deals:read"), None, ["deals:read"])

    async def test_all_without_identity(self, graph):
        with pytest.raises(UnauthorizedError):
            await authorize_all_permissions(graph(), None, [])

    async def test_unauthorized_is_not_forbidden(self):
        assert not issubclass(UnauthorizedError, ForbiddenError)
        assert UnauthorizedError().status_code == 401
        assert ForbiddenError().status_code == 403


class TestRequirePermission:

    async def test_dynamic_grant(self, graph):
        user = _user("assistant")
        assert await authorize_permission(graph("reports:export"), user, "reports", "export") is user

    async def test_static_fallback(self, graph):
        user = _user("agent")
        assert await authorize_permission(graph(), user, "deals", "create") is user

    async def test_manager_deny_list(self, graph):
        with pytest.raises(ForbiddenError) as exc:
            await authorize_permission(graph(), _user("manager"), "users", "delete")
        assert exc.value.message == "Insufficient permissions for delete on users"

    async def test_denial_does_not_list_held_permissions(self, graph):
        with pytest.raises(ForbiddenError) as exc:
            await authorize_permission(graph("deals:read", "deals:list"), _user("assistant"), "deals", "update")
        assert "deals:read" not in exc.value.message
        assert "deals:list" not in exc.value.message

    async def test_unknown_role_denied(self, graph):
        with pytest.raises(ForbiddenError):
            await authorize_permission(graph(), _user("superuser"), "deals", "read")

    async def test_role_as_none_denied(self, graph):
        with pytest.raises(ForbiddenError):
            await authorize_permission(graph(), _user(None), "deals", "read")


class TestRequireAnyPermission:

    async def test_first_match_wins(self, graph):
        user = _user("assistant")
        assert await authorize_any_permission(graph("reports:export"), user, ["deals:delete", "reports:export"]) is user

    async def test_admin_fallback(self, graph):
        user = _user("admin")
        assert await authorize_any_permission(graph(), user, ["settings:delete"]) is user

    @pytest.mark.parametrize("role", ["manager", "agent", "assistant"])
    async def test_non_admin_static_roles_ignored(self, graph, role):
        """Even permissions the static table would grant are refused here."""
        with pytest.raises(ForbiddenError) as exc:
            await authorize_any_permission(graph(), _user(role), ["deals:read", "deals:list"])
        assert exc.value.message == "Insufficient permissions for this action"

    async def test_empty_list(self, graph):
        with pytest.raises(ForbiddenError):
            await authorize_any_permission(graph(), _user("manager"), [])
        assert await authorize_any_permission(graph(), _user("admin"), []) is not None

    async def test_short_circuits(self, cache):
        calls = []

        class RecordingService(PermissionService):
            async def check_permission(self, user_id, resource, action):
                calls.append(f"{resource}:{action}")
                return resource == "deals"

        service = RecordingService(None, cache, StubResolver())
        await authorize_any_permission(service, _user("agent"), ["contacts:read", "deals:read", "tasks:read"])

        assert calls == ["contacts:read", "deals:read"]


class TestRequireAllPermissions:

    async def test_all_granted(self, graph):
        user = _user("agent")
        assert await authorize_all_permissions(graph("deals:read", "deals:update"), user, ["deals:read", "deals:update"]) is user

    async def test_first_missing_named(self, graph):
        with pytest.raises(ForbiddenError) as exc:
            await authorize_all_permissions(
                graph("deals:read"), _user("manager"), ["deals:read", "deals:export", "deals:archive"]
            )
        assert exc.value.message == "Insufficient permissions for this action (missing deals:export)"

    async def test_admin_passes_each(self, graph):
        user = _user("admin")
        assert await authorize_all_permissions(graph(), user, ["settings:delete", "users:delete"]) is user

    async def test_agent_static_table_not_used(self, graph):
        with pytest.raises(ForbiddenError, match="missing deals:read"):
            await authorize_all_permissions(graph(), _user("agent"), ["deals:read"])

    async def test_empty_list_allows(self, graph):
        user = _user("assistant")
        assert await authorize_all_permissions(graph(), user, []) is user


class TestScenarios:
    """End-to-end gate decisions against the real store."""

    async def test_agent_falls_back_to_static_policy(self, service, make_user):
        agent = await make_user(role="agent")
        assert await authorize_permission(service, agent, "deals", "create") is agent

    async def test_custom_role_beats_assistant_policy(self, service, make_user, make_role, make_permission):
        export = await make_permission("reports", "export")
        role = await make_role("Report Exporter", [export])
        assistant = await make_user(role="assistant")
        await service.assign_role_to_user(assistant.id, role.id)

        assert await authorize_permission(service, assistant, "reports", "export") is assistant

    async def test_manager_cannot_delete_users(self, service, make_user):
        manager = await make_user(role="manager")
        with pytest.raises(ForbiddenError):
            await authorize_permission(service, manager, "users", "delete")

    async def test_revocation_takes_effect_immediately(self, service, make_user, make_role, make_permission):
        export = await make_permission("reports", "export")
        role = await make_role("Report Exporter", [export])
        assistant = await make_user(role="assistant")
        await service.assign_role_to_user(assistant.id, role.id)
        await authorize_permission(service, assistant, "reports", "export")

        await service.remove_permission_from_role(role.id, export.id)

        with pytest.raises(ForbiddenError):
            await authorize_permission(service, assistant, "reports", "export")
