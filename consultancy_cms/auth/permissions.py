"""Role-based access control (RBAC) for the CMS.

Hierarchical roles, highest first:
- SUPER_ADMIN (6): everything, including assigning SUPER_ADMIN
- ADMIN (5): back-office access, manages EDITOR and below
- EDITOR (4), AUTHOR (3), CONTRIBUTOR (2): content roles
- VIEWER (1): default for every new identity

Only ACTIVE users hold any privilege.
"""

from enum import Enum


class Role(str, Enum):
    """User roles ordered by privilege."""

    VIEWER = "VIEWER"
    CONTRIBUTOR = "CONTRIBUTOR"
    AUTHOR = "AUTHOR"
    EDITOR = "EDITOR"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class UserStatus(str, Enum):
    """Account lifecycle status."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"


ROLE_HIERARCHY: dict[Role, int] = {
    Role.VIEWER: 1,
    Role.CONTRIBUTOR: 2,
    Role.AUTHOR: 3,
    Role.EDITOR: 4,
    Role.ADMIN: 5,
    Role.SUPER_ADMIN: 6,
}

DEFAULT_ROLE = Role.VIEWER
DEFAULT_STATUS = UserStatus.ACTIVE


def resolve_role(value: Role | str | None) -> Role:
    """Resolve a stored role value, defaulting only when it is absent.

    ``None`` means the record never had a role and resolves to VIEWER.
    Any other value must name a real role.

    Raises:
        ValueError: If ``value`` is present but not a known role.
    """
    if value is None:
        return DEFAULT_ROLE
    return Role(value)


def resolve_status(value: UserStatus | str | None) -> UserStatus:
    """Resolve a stored status value, defaulting only when it is absent.

    Raises:
        ValueError: If ``value`` is present but not a known status.
    """
    if value is None:
        return DEFAULT_STATUS
    return UserStatus(value)


def get_role_level(role: Role | str) -> int:
    """Get the permission level for a role, 0 for unknown roles."""
    if isinstance(role, str):
        try:
            role = Role(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(
    user_role: Role | str,
    required_role: Role | str,
    status: UserStatus | str = UserStatus.ACTIVE,
) -> bool:
    """Check if an active user has at least the required permission level.

    Examples:
        >>> has_permission(Role.ADMIN, Role.EDITOR)
        True
        >>> has_permission(Role.AUTHOR, Role.EDITOR)
        False
        >>> has_permission(Role.ADMIN, Role.VIEWER, UserStatus.SUSPENDED)
        False
    """
    if UserStatus(status) != UserStatus.ACTIVE:
        return False
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: Role | str) -> bool:
    """Check if role is ADMIN or SUPER_ADMIN."""
    return get_role_level(role) >= ROLE_HIERARCHY[Role.ADMIN]


def is_super_admin(role: Role | str) -> bool:
    """Check if role is exactly SUPER_ADMIN."""
    return get_role_level(role) == ROLE_HIERARCHY[Role.SUPER_ADMIN]


def can_manage_role(user_role: Role | str, target_role: Role | str) -> bool:
    """Check if a user may assign ``target_role`` or manage a holder of it.

    Roles strictly below your own are manageable; SUPER_ADMIN manages all.

    Examples:
        >>> can_manage_role(Role.ADMIN, Role.EDITOR)
        True
        >>> can_manage_role(Role.ADMIN, Role.ADMIN)
        False
        >>> can_manage_role(Role.SUPER_ADMIN, Role.SUPER_ADMIN)
        True
    """
    if is_super_admin(user_role):
        return True
    return get_role_level(user_role) > get_role_level(target_role)


def get_assignable_roles(user_role: Role | str) -> list[Role]:
    """List the roles a user may hand out, highest first."""
    return [
        role
        for role in sorted(ROLE_HIERARCHY, key=ROLE_HIERARCHY.__getitem__, reverse=True)
        if can_manage_role(user_role, role)
    ]


def can_update_user_status(
    user_role: Role | str,
    target_role: Role | str,
    new_status: UserStatus | str,
) -> bool:
    """Check if a user may move a holder of ``target_role`` to ``new_status``.

    Nobody may suspend a SUPER_ADMIN.
    """
    if is_super_admin(target_role) and UserStatus(new_status) == UserStatus.SUSPENDED:
        return False
    return can_manage_role(user_role, target_role)
