"""Pydantic schemas exposed by the identity adapter and session service.

The adapter shapes mirror the session provider vocabulary: ids are opaque
strings and ``email_verified`` is a plain ``datetime | None``.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from consultancy_cms.auth.models import (
    LinkedAccount,
    Session,
    User,
    VerificationToken,
    collapse_email_verification,
)
from consultancy_cms.auth.permissions import Role, UserStatus


class AdapterUser(BaseModel):
    """User as seen by the session provider."""

    id: str
    email: str
    name: str | None = None
    image: str | None = None
    email_verified: datetime | None = Field(
        None, description="Verification time; None when unverified or never checked"
    )
    role: Role
    status: UserStatus

    @classmethod
    def from_user(cls, user: User) -> "AdapterUser":
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            image=user.image,
            email_verified=collapse_email_verification(user.email_verification),
            role=user.role,
            status=user.status,
        )


class AdapterAccount(BaseModel):
    """Linked provider account; token fields are passed through untouched."""

    user_id: str
    type: str
    provider: str
    provider_account_id: str
    refresh_token: str | None = None
    access_token: str | None = None
    expires_at: int | None = None
    token_type: str | None = None
    scope: str | None = None
    id_token: str | None = None
    session_state: str | None = None

    @classmethod
    def from_account(cls, account: LinkedAccount) -> "AdapterAccount":
        return cls(
            user_id=str(account.user_id),
            type=account.type,
            provider=account.provider,
            provider_account_id=account.provider_account_id,
            refresh_token=account.refresh_token,
            access_token=account.access_token,
            expires_at=account.expires_at,
            token_type=account.token_type,
            scope=account.scope,
            id_token=account.id_token,
            session_state=account.session_state,
        )


class AdapterSession(BaseModel):
    """Session row as seen by the session provider."""

    session_token: str
    user_id: str
    expires: datetime

    @classmethod
    def from_session(cls, session: Session) -> "AdapterSession":
        return cls(
            session_token=session.session_token,
            user_id=str(session.user_id),
            expires=session.expires,
        )


class AdapterVerificationToken(BaseModel):
    identifier: str
    token: str
    expires: datetime

    @classmethod
    def from_token(cls, token: VerificationToken) -> "AdapterVerificationToken":
        return cls(
            identifier=token.identifier, token=token.token, expires=token.expires
        )


class SessionUser(BaseModel):
    """User carried on a resolved session. ``role`` is never absent."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None = None
    image: str | None = None
    role: Role = Role.VIEWER
    status: UserStatus = UserStatus.ACTIVE


class AuthSession(BaseModel):
    """Request-scoped session returned by ``SessionService.get_session``."""

    user: SessionUser
    expires: datetime
