"""
Role vocabulary shared by the server, scripts and tests.

Roles reach the application in two shapes: the identity provider emits
namespaced strings (``"org:admin"``) while the database stores the bare name
(``"admin"``). Everything downstream of ``normalize_role`` works with the
closed ``Role`` enum only.

Matching is case-sensitive: ``"Admin"`` and ``"org:ADMIN"`` are not roles.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


PROVIDER_ROLE_PREFIX = "org:"


class Role(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


# Rank used for permission checks (higher includes lower)
ROLE_HIERARCHY: dict[Role, int] = {
    Role.MEMBER: 1,
    Role.ADMIN: 2,
}

DEFAULT_ROLE = Role.MEMBER


def strip_provider_prefix(raw: str, prefix: str = PROVIDER_ROLE_PREFIX) -> str:
    """Remove the provider namespace from a role string, if present."""
    if prefix and raw.startswith(prefix):
        return raw[len(prefix):]
    return raw


def to_provider_role(role: Role, prefix: str = PROVIDER_ROLE_PREFIX) -> str:
    """Format a role the way the provider expects it on write calls."""
    return f"{prefix}{role.value}"


def normalize_role(
    raw: Optional[str], prefix: str = PROVIDER_ROLE_PREFIX
) -> Optional[Role]:
    """Map a raw provider or database role string onto ``Role``.

    Returns None for missing, empty or unrecognised values. Unknown names are
    never mapped to a "nearest" role.
    """
    if not raw:
        return None
    name = strip_provider_prefix(raw, prefix)
    try:
        return Role(name)
    except ValueError:
        return None


def get_default_role() -> Role:
    return DEFAULT_ROLE


def get_normalized_role(
    raw: Optional[str], prefix: str = PROVIDER_ROLE_PREFIX
) -> Role:
    """Like ``normalize_role`` but falls back to the default role."""
    role = normalize_role(raw, prefix)
    return role if role is not None else get_default_role()


def is_valid_role(raw: Optional[str]) -> bool:
    return normalize_role(raw) is not None


def has_role_permission(user_role: Optional[Role], required_role: Role) -> bool:
    """True if ``user_role`` ranks at or above ``required_role``.

    A missing role grants nothing, not even member access.
    """
    if user_role is None:
        return False
    return ROLE_HIERARCHY[Role(user_role)] >= ROLE_HIERARCHY[Role(required_role)]


def get_effective_role(
    database_role: Optional[str], provider_role: Optional[str]
) -> Role:
    """Role used for authorization: database first, then provider, then default."""
    for raw in (database_role, provider_role):
        role = normalize_role(raw)
        if role is not None:
            return role
    return get_default_role()


def get_display_role(
    database_role: Optional[str], provider_role: Optional[str]
) -> Role:
    """Role shown to users: provider first, then database, then default."""
    return get_effective_role(provider_role, database_role)


def role_permissions(role: Optional[Role]) -> dict[str, bool]:
    """Capability map for the current user's role."""
    is_admin = has_role_permission(role, Role.ADMIN)
    is_member = has_role_permission(role, Role.MEMBER)
    return {
        "can_invite_members": is_admin,
        "can_manage_roles": is_admin,
        "can_remove_members": is_admin,
        "can_view_analytics": is_member,
        "can_manage_inventory": is_member,
        "can_process_transactions": is_member,
        "can_manage_customers": is_member,
        "can_view_reports": is_member,
    }
