"""Tests for auth permissions."""

import pytest

from consultancy_cms.auth.permissions import (
    ROLE_HIERARCHY,
    Role,
    UserStatus,
    can_manage_role,
    can_update_user_status,
    get_assignable_roles,
    get_role_level,
    has_permission,
    is_admin,
    is_super_admin,
    resolve_role,
    resolve_status,
)


class TestRole:
    """Tests for Role enum."""

    def test_role_values(self) -> None:
        """Roles are stored as their upper-case names."""
        assert Role.VIEWER.value == "VIEWER"
        assert Role.SUPER_ADMIN.value == "SUPER_ADMIN"

    def test_role_hierarchy(self) -> None:
        assert [ROLE_HIERARCHY[r] for r in Role] == [1, 2, 3, 4, 5, 6]

    def test_all_roles_have_levels(self) -> None:
        for role in Role:
            assert role in ROLE_HIERARCHY


class TestResolveDefaults:
    """Defaults apply only when the value is absent."""

    def test_missing_role_resolves_to_viewer(self) -> None:
        assert resolve_role(None) == Role.VIEWER

    def test_present_role_is_kept(self) -> None:
        assert resolve_role("EDITOR") == Role.EDITOR

    def test_empty_role_is_not_defaulted(self) -> None:
        with pytest.raises(ValueError):
            resolve_role("")

    def test_missing_status_resolves_to_active(self) -> None:
        assert resolve_status(None) == UserStatus.ACTIVE

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValueError):
            resolve_status("BANNED")


class TestGetRoleLevel:
    @pytest.mark.parametrize(
        "role,expected_level",
        [
            (Role.VIEWER, 1),
            (Role.AUTHOR, 3),
            ("EDITOR", 4),
            ("SUPER_ADMIN", 6),
        ],
    )
    def test_known_roles(self, role: Role | str, expected_level: int) -> None:
        assert get_role_level(role) == expected_level

    def test_invalid_role_returns_zero(self) -> None:
        assert get_role_level("superadmin") == 0
        assert get_role_level("") == 0


class TestHasPermission:
    def test_higher_role_passes(self) -> None:
        assert has_permission(Role.ADMIN, Role.EDITOR) is True
        assert has_permission(Role.EDITOR, Role.EDITOR) is True

    def test_lower_role_fails(self) -> None:
        assert has_permission(Role.AUTHOR, Role.EDITOR) is False

    @pytest.mark.parametrize(
        "status", [UserStatus.INACTIVE, UserStatus.PENDING, UserStatus.SUSPENDED]
    )
    def test_inactive_users_hold_no_permission(self, status: UserStatus) -> None:
        assert has_permission(Role.SUPER_ADMIN, Role.VIEWER, status) is False


class TestAdminChecks:
    def test_is_admin(self) -> None:
        assert is_admin(Role.ADMIN) is True
        assert is_admin(Role.SUPER_ADMIN) is True
        assert is_admin(Role.EDITOR) is False

    def test_is_super_admin(self) -> None:
        assert is_super_admin(Role.SUPER_ADMIN) is True
        assert is_super_admin(Role.ADMIN) is False


class TestCanManageRole:
    def test_strictly_lower_roles_are_manageable(self) -> None:
        assert can_manage_role(Role.ADMIN, Role.EDITOR) is True
        assert can_manage_role(Role.ADMIN, Role.ADMIN) is False
        assert can_manage_role(Role.EDITOR, Role.ADMIN) is False

    def test_super_admin_manages_everything(self) -> None:
        for role in Role:
            assert can_manage_role(Role.SUPER_ADMIN, role) is True

    def test_assignable_roles_for_admin(self) -> None:
        assert get_assignable_roles(Role.ADMIN) == [
            Role.EDITOR,
            Role.AUTHOR,
            Role.CONTRIBUTOR,
            Role.VIEWER,
        ]

    def test_viewer_assigns_nothing(self) -> None:
        assert get_assignable_roles(Role.VIEWER) == []


class TestCanUpdateUserStatus:
    def test_admin_suspends_editor(self) -> None:
        assert can_update_user_status(Role.ADMIN, Role.EDITOR, UserStatus.SUSPENDED)

    def test_nobody_suspends_super_admin(self) -> None:
        assert not can_update_user_status(
            Role.SUPER_ADMIN, Role.SUPER_ADMIN, UserStatus.SUSPENDED
        )

    def test_super_admin_may_deactivate_super_admin(self) -> None:
        assert can_update_user_status(
            Role.SUPER_ADMIN, Role.SUPER_ADMIN, UserStatus.INACTIVE
        )
