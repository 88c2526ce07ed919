"""User administration service layer.

Business logic for:
- Bulk role changes, status changes and email queueing
- Single-user role and status changes
- Last-administrator protection
- Session revocation for deactivated or suspended users
- Admin audit trail
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from consultancy_cms.auth.models import AdminAuditEntry, User, create_audit_entry
from consultancy_cms.auth.permissions import (
    Role,
    UserStatus,
    can_manage_role,
    can_update_user_status,
    get_assignable_roles,
    is_admin,
    resolve_role,
)
from consultancy_cms.auth.schemas import SessionUser
from consultancy_cms.auth.store import IdentityStore
from consultancy_cms.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidFieldError,
    NotFoundError,
)
from consultancy_cms.core.logging import get_logger


logger = get_logger(__name__)

MAX_BULK_USERS = 500

# Statuses that end every open session of the user
REVOKING_STATUSES = {UserStatus.INACTIVE, UserStatus.SUSPENDED}


class BulkAction(str, Enum):
    """Supported bulk operations."""

    UPDATE_ROLE = "UPDATE_ROLE"
    UPDATE_STATUS = "UPDATE_STATUS"
    SEND_EMAIL = "SEND_EMAIL"


@dataclass
class BulkActionResult:
    action: BulkAction
    requested: int
    updated: int
    sessions_revoked: int
    message: str


class UserAdminService:
    """Service for administrator-driven user changes."""

    def __init__(self, store: IdentityStore, admin_emails: Iterable[str] = ()):
        self.store = store
        self.admin_emails = frozenset(email.strip().lower() for email in admin_emails)

    def effective_role(self, actor: SessionUser) -> Role:
        """Actor role, raised to ADMIN for allow-listed operators."""
        role = resolve_role(actor.role)
        if actor.email.lower() in self.admin_emails and not is_admin(role):
            return Role.ADMIN
        return role

    # ==========================================================================
    # Guards
    # ==========================================================================

    def _check_role_change(
        self, actor_role: Role, targets: list[User], role: Role
    ) -> None:
        if not can_manage_role(actor_role, role):
            raise ForbiddenError(f"You cannot assign the {role.value} role")
        for user in targets:
            if not can_manage_role(actor_role, user.role):
                raise ForbiddenError(
                    f"You cannot change the role of a {user.role.value} user"
                )

    def _check_status_change(
        self, actor_role: Role, targets: list[User], new_status: UserStatus
    ) -> None:
        for user in targets:
            if not can_update_user_status(actor_role, user.role, new_status):
                raise ForbiddenError(
                    f"You cannot set a {user.role.value} user to {new_status.value}"
                )

    async def _check_admins_remain(self, changed: list[User]) -> None:
        """At least one active administrator must survive the change."""
        changed_by_id = {user.id: user for user in changed}
        before = after = 0
        seen = set()
        for role in (Role.ADMIN, Role.SUPER_ADMIN):
            for stored in await self.store.list_users_by_role(role):
                seen.add(stored.id)
                user = changed_by_id.get(stored.id, stored)
                before += stored.is_active
                after += user.is_active and is_admin(user.role)
        # Promotions are not in the role index yet
        for user in changed:
            if user.id not in seen:
                after += user.is_active and is_admin(user.role)
        if before > 0 and after == 0:
            raise ConflictError("At least one active administrator must remain")

    # ==========================================================================
    # Apply
    # ==========================================================================

    async def _load_targets(self, user_ids: Iterable[UUID]) -> list[User]:
        targets = []
        for user_id in user_ids:
            user = await self.store.get_user(user_id)
            if user is not None:
                targets.append(user)
        return targets

    async def _apply(
        self,
        actor: SessionUser,
        targets: list[User],
        role: Role | None = None,
        new_status: UserStatus | None = None,
    ) -> tuple[list[User], int]:
        actor_role = self.effective_role(actor)
        if role is not None:
            self._check_role_change(actor_role, targets, role)
        if new_status is not None:
            self._check_status_change(actor_role, targets, new_status)

        now = datetime.now(UTC)
        changed = []
        for user in targets:
            updated = replace(user, updated_at=now)
            if role is not None:
                updated.role = role
                # Promotion to an administrative role reactivates the account
                if is_admin(role):
                    updated.status = UserStatus.ACTIVE
            if new_status is not None:
                updated.status = new_status
            changed.append(updated)

        await self._check_admins_remain(changed)

        revoked = 0
        for previous, updated in zip(targets, changed, strict=True):
            await self.store.update_user(updated, previous_email=previous.email)
            if updated.status in REVOKING_STATUSES:
                revoked += await self.store.delete_sessions_for_user(updated.id)
        return changed, revoked

    async def _audit(
        self, actor: SessionUser, action: str, targets: list[UUID], message: str
    ) -> None:
        entry = create_audit_entry(UUID(actor.id), action, targets, message)
        await self.store.append_audit_entry(entry)
        logger.info(
            "bulk_user_action",
            actor_id=actor.id,
            action=action,
            target_count=len(targets),
            message=message,
        )

    # ==========================================================================
    # Bulk
    # ==========================================================================

    async def bulk_action(
        self,
        actor: SessionUser,
        action: BulkAction,
        user_ids: list[UUID],
        role: Role | None = None,
        status: UserStatus | None = None,
    ) -> BulkActionResult:
        """Apply one action to many users.

        Unknown ids are skipped and show up as a lower ``updated`` count.
        All permission and last-administrator checks run before any write.
        """
        action = BulkAction(action)
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            raise InvalidFieldError("user_ids", "Select at least one user")
        if len(ids) > MAX_BULK_USERS:
            raise InvalidFieldError(
                "user_ids", f"At most {MAX_BULK_USERS} users per request"
            )
        if UUID(actor.id) in ids:
            raise InvalidFieldError(
                "user_ids", "You cannot include yourself in a bulk action"
            )

        targets = await self._load_targets(ids)
        revoked = 0

        if action == BulkAction.UPDATE_ROLE:
            if role is None:
                raise InvalidFieldError("role", "Role is required for UPDATE_ROLE")
            role = Role(role)
            await self._apply(actor, targets, role=role)
            message = f"Updated role to {role.value} for {len(targets)} user(s)"
        elif action == BulkAction.UPDATE_STATUS:
            if status is None:
                raise InvalidFieldError(
                    "status", "Status is required for UPDATE_STATUS"
                )
            status = UserStatus(status)
            _, revoked = await self._apply(actor, targets, new_status=status)
            message = f"Updated status to {status.value} for {len(targets)} user(s)"
        else:
            # Delivery is handled outside this service; the request is recorded
            message = f"Queued email to {len(targets)} user(s)"

        await self._audit(
            actor, f"bulk_{action.value.lower()}", [u.id for u in targets], message
        )
        return BulkActionResult(
            action=action,
            requested=len(ids),
            updated=len(targets),
            sessions_revoked=revoked,
            message=message,
        )

    # ==========================================================================
    # Single user
    # ==========================================================================

    async def _require_other_user(self, actor: SessionUser, user_id: UUID) -> User:
        if UUID(actor.id) == user_id:
            raise InvalidFieldError("user_id", "You cannot change your own account")
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_role(self, actor: SessionUser, user_id: UUID, role: Role) -> User:
        role = Role(role)
        target = await self._require_other_user(actor, user_id)
        previous = target.role
        (updated,), _ = await self._apply(actor, [target], role=role)
        await self._audit(
            actor,
            "update_role",
            [user_id],
            f"Changed role from {previous.value} to {role.value}",
        )
        return updated

    async def update_status(
        self, actor: SessionUser, user_id: UUID, status: UserStatus
    ) -> User:
        status = UserStatus(status)
        target = await self._require_other_user(actor, user_id)
        previous = target.status
        (updated,), _ = await self._apply(actor, [target], new_status=status)
        await self._audit(
            actor,
            "update_status",
            [user_id],
            f"Changed status from {previous.value} to {status.value}",
        )
        return updated

    async def list_audit_entries(self, limit: int = 50) -> list[AdminAuditEntry]:
        return await self.store.list_audit_entries(limit)

    def assignable_roles(self, actor: SessionUser) -> list[Role]:
        return get_assignable_roles(self.effective_role(actor))
