"""
Static role policy.

A hardcoded decision table keyed by the user's built-in role. It never touches
the database and is consulted only after the dynamic permission graph has
declined a request.

- admin: everything
- manager: everything except a fixed deny-list (blocklist)
- agent: only a fixed allow-list (allowlist)
- assistant: read and list on any resource
- anything else: nothing
"""
from enum import Enum
from typing import Callable, Dict, Optional


class StaticRole(str, Enum):
    """Built-in role carried on every user record."""
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"
    ASSISTANT = "assistant"


def permission_key(resource: str, action: str) -> str:
    """Canonical "resource:action" string used throughout the permission core."""
    return f"{resource}:{action}"


def split_permission_key(key: str) -> tuple[str, str]:
    """Split "resource:action" on the first colon."""
    resource, _, action = key.partition(":")
    return resource, action


# New dangerous actions must be added here explicitly or managers get them.
MANAGER_DENIED: frozenset[str] = frozenset({
    "settings:update",
    "settings:delete",
    "users:delete",
})

AGENT_ALLOWED: frozenset[str] = frozenset(
    [
        permission_key(resource, action)
        for resource in ("properties", "contacts", "deals", "tasks", "documents", "communications")
        for action in ("create", "read", "update", "list")
    ]
    + [
        permission_key(resource, action)
        for resource in ("reports", "analytics")
        for action in ("read", "list")
    ]
)

ASSISTANT_ACTIONS: frozenset[str] = frozenset({"read", "list"})


def _admin(resource: str, action: str) -> bool:
    return True


def _manager(resource: str, action: str) -> bool:
    return permission_key(resource, action) not in MANAGER_DENIED


def _agent(resource: str, action: str) -> bool:
    return permission_key(resource, action) in AGENT_ALLOWED


def _assistant(resource: str, action: str) -> bool:
    return action in ASSISTANT_ACTIONS


ROLE_POLICIES: Dict[StaticRole, Callable[[str, str], bool]] = {
    StaticRole.ADMIN: _admin,
    StaticRole.MANAGER: _manager,
    StaticRole.AGENT: _agent,
    StaticRole.ASSISTANT: _assistant,
}


def parse_role(role_name) -> Optional[StaticRole]:
    """Map a role name (or StaticRole) to a StaticRole, or None if unknown."""
    if isinstance(role_name, StaticRole):
        return role_name
    if not isinstance(role_name, str):
        return None
    try:
        return StaticRole(role_name)
    except ValueError:
        return None


def decide(role_name, resource: str, action: str) -> bool:
    """
    Decide whether the built-in role grants `action` on `resource`.

    Total over the four known roles; any other value, including None,
    is denied.
    """
    role = parse_role(role_name)
    if role is None:
        return False
    return ROLE_POLICIES[role](resource, action)
