"""
Tests for the role vocabulary: normalization, defaults and permission ranks.
"""

from __future__ import annotations

import pytest

from tcgshop_shared.roles import (
    Role,
    get_default_role,
    get_display_role,
    get_effective_role,
    get_normalized_role,
    has_role_permission,
    is_valid_role,
    normalize_role,
    role_permissions,
    strip_provider_prefix,
    to_provider_role,
)

INVALID_INPUTS = [None, "", "org:basic_member", "superadmin", "org:", "Admin", "org:ADMIN", "admin "]


class TestNormalizeRole:
    @pytest.mark.parametrize("role", list(Role))
    def test_prefixed_and_bare_names_normalize(self, role):
        assert normalize_role("org:" + role.value) == role
        assert normalize_role(role.value) == role

    @pytest.mark.parametrize("raw", INVALID_INPUTS)
    def test_invalid_input_is_none(self, raw):
        assert normalize_role(raw) is None

    def test_only_leading_prefix_is_stripped(self):
        assert strip_provider_prefix("org:org:admin") == "org:admin"
        assert normalize_role("org:org:admin") is None

    def test_custom_prefix(self):
        assert normalize_role("tenant:member", prefix="tenant:") == Role.MEMBER
        assert normalize_role("org:member", prefix="tenant:") is None

    def test_provider_format_round_trip(self):
        assert to_provider_role(Role.ADMIN) == "org:admin"
        assert normalize_role(to_provider_role(Role.MEMBER)) == Role.MEMBER


class TestNormalizedRoleDefault:
    @pytest.mark.parametrize("raw", INVALID_INPUTS)
    def test_invalid_input_gets_member(self, raw):
        assert get_normalized_role(raw) == Role.MEMBER == get_default_role()

    @pytest.mark.parametrize("raw", ["admin", "org:admin", "member", "org:member"])
    def test_agrees_with_normalize_on_valid_input(self, raw):
        assert get_normalized_role(raw) == normalize_role(raw)

    def test_is_valid_role(self):
        assert is_valid_role("org:admin")
        assert not is_valid_role("org:basic_member")


class TestPermissions:
    def test_admin_has_everything(self):
        assert has_role_permission(Role.ADMIN, Role.ADMIN)
        assert has_role_permission(Role.ADMIN, Role.MEMBER)

    def test_member_is_not_admin(self):
        assert has_role_permission(Role.MEMBER, Role.MEMBER)
        assert not has_role_permission(Role.MEMBER, Role.ADMIN)

    def test_none_has_nothing(self):
        assert not has_role_permission(None, Role.MEMBER)
        assert not has_role_permission(None, Role.ADMIN)

    @pytest.mark.parametrize("role", [None, *Role])
    def test_monotonic(self, role):
        if has_role_permission(role, Role.ADMIN):
            assert has_role_permission(role, Role.MEMBER)
        if not has_role_permission(role, Role.MEMBER):
            assert not has_role_permission(role, Role.ADMIN)

    def test_role_permissions_map(self):
        admin = role_permissions(Role.ADMIN)
        member = role_permissions(Role.MEMBER)
        assert admin["can_manage_roles"] and admin["can_invite_members"]
        assert not member["can_manage_roles"] and not member["can_remove_members"]
        assert member["can_process_transactions"]
        assert not any(role_permissions(None).values())


class TestRolePrecedence:
    def test_database_wins_for_authorization(self):
        assert get_effective_role("member", "org:admin") == Role.MEMBER

    def test_provider_wins_for_display(self):
        assert get_display_role("member", "org:admin") == Role.ADMIN

    def test_falls_back_when_preferred_source_invalid(self):
        assert get_effective_role(None, "org:admin") == Role.ADMIN
        assert get_effective_role("bogus", "org:admin") == Role.ADMIN
        assert get_display_role("admin", "org:bogus") == Role.ADMIN

    def test_default_when_both_missing(self):
        assert get_effective_role(None, None) == Role.MEMBER
        assert get_display_role("", "org:basic_member") == Role.MEMBER
