"""Session resolution and authorization guards.

Every admin-facing operation passes through ``require_admin`` or
``require_super_admin``. A user counts as an administrator when they are
ACTIVE and either hold ADMIN/SUPER_ADMIN or their email is on the
configured operator allow-list.
"""

import secrets
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from consultancy_cms.auth.adapter import IdentityAdapter
from consultancy_cms.auth.permissions import (
    UserStatus,
    is_admin,
    is_super_admin,
    resolve_role,
)
from consultancy_cms.auth.schemas import AdapterSession, AuthSession, SessionUser
from consultancy_cms.core.exceptions import ForbiddenError, UnauthenticatedError
from consultancy_cms.core.logging import get_logger


logger = get_logger(__name__)


class SessionService:
    """Resolve raw session tokens into role-annotated sessions."""

    def __init__(
        self,
        adapter: IdentityAdapter,
        admin_emails: Iterable[str] = (),
        session_max_age: timedelta = timedelta(days=30),
    ):
        self.adapter = adapter
        self.admin_emails = frozenset(email.strip().lower() for email in admin_emails)
        self.session_max_age = session_max_age

    async def get_session(self, session_token: str | None) -> AuthSession | None:
        """Return the live session for ``session_token`` or None."""
        if not session_token:
            return None

        resolved = await self.adapter.get_session_and_user(session_token)
        if resolved is None:
            return None

        session, user = resolved
        return AuthSession(
            user=SessionUser(
                id=user.id,
                email=user.email,
                name=user.name,
                image=user.image,
                role=resolve_role(user.role),
                status=user.status,
            ),
            expires=session.expires,
        )

    async def get_current_user(self, session_token: str | None) -> SessionUser | None:
        session = await self.get_session(session_token)
        return session.user if session else None

    async def require_session(self, session_token: str | None) -> AuthSession:
        session = await self.get_session(session_token)
        if session is None:
            raise UnauthenticatedError("Please sign in to continue")
        return session

    def is_admin_user(self, user: SessionUser) -> bool:
        if user.status != UserStatus.ACTIVE:
            return False
        return is_admin(user.role) or user.email.lower() in self.admin_emails

    async def require_admin(self, session_token: str | None) -> AuthSession:
        session = await self.require_session(session_token)
        if not self.is_admin_user(session.user):
            logger.warning(
                "admin_access_denied",
                user_id=session.user.id,
                role=session.user.role.value,
            )
            raise ForbiddenError("Admin privileges required")
        return session

    async def require_super_admin(self, session_token: str | None) -> AuthSession:
        session = await self.require_session(session_token)
        user = session.user
        if user.status != UserStatus.ACTIVE or not is_super_admin(user.role):
            logger.warning(
                "super_admin_access_denied", user_id=user.id, role=user.role.value
            )
            raise ForbiddenError("Super admin privileges required")
        return session

    async def start_session(self, user_id: str) -> AdapterSession:
        """Issue a new opaque session token for a signed-in user."""
        return await self.adapter.create_session(
            {
                "session_token": secrets.token_urlsafe(32),
                "user_id": user_id,
                "expires": datetime.now(UTC) + self.session_max_age,
            }
        )

    async def end_session(self, session_token: str) -> None:
        """Sign out by deleting the session."""
        await self.adapter.delete_session(session_token)
