"""Database models for identities.

Cassandra table definitions for:
- users / users_by_email: user records and the unique email lookup
- accounts / accounts_by_user: external provider bindings
- sessions / sessions_by_user: opaque session tokens
- verification_tokens: single-use sign-in tokens
- admin_audit_log: append-only trail of user administration actions

Email verification is tri-state. It is persisted as two columns
(``email_verified`` boolean-or-null plus ``email_verified_at``) and modelled
in code as a tagged variant, see ``EmailVerification``.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from consultancy_cms.auth.permissions import (
    DEFAULT_ROLE,
    DEFAULT_STATUS,
    Role,
    UserStatus,
    resolve_role,
    resolve_status,
)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    email TEXT,
    name TEXT,
    image TEXT,
    email_verified BOOLEAN,
    email_verified_at TIMESTAMP,
    role TEXT,
    status TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

USERS_ROLE_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS users_role_idx ON {keyspace}.users (role)
"""

# Uniqueness of email is enforced with INSERT ... IF NOT EXISTS on this table
USERS_BY_EMAIL_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users_by_email (
    email TEXT PRIMARY KEY,
    user_id UUID
)
"""

ACCOUNT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.accounts (
    provider TEXT,
    provider_account_id TEXT,
    user_id UUID,
    type TEXT,
    refresh_token TEXT,
    access_token TEXT,
    expires_at BIGINT,
    token_type TEXT,
    scope TEXT,
    id_token TEXT,
    session_state TEXT,
    PRIMARY KEY ((provider, provider_account_id))
)
"""

ACCOUNTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.accounts_by_user (
    user_id UUID,
    provider TEXT,
    provider_account_id TEXT,
    PRIMARY KEY ((user_id), provider, provider_account_id)
)
"""

SESSION_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.sessions (
    session_token TEXT PRIMARY KEY,
    user_id UUID,
    expires TIMESTAMP
)
"""

SESSIONS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.sessions_by_user (
    user_id UUID,
    session_token TEXT,
    PRIMARY KEY ((user_id), session_token)
)
"""

VERIFICATION_TOKEN_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.verification_tokens (
    identifier TEXT,
    token TEXT,
    expires TIMESTAMP,
    PRIMARY KEY ((identifier, token))
)
"""

ADMIN_AUDIT_LOG_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.admin_audit_log (
    bucket TEXT,
    created_at TIMESTAMP,
    entry_id UUID,
    actor_id UUID,
    action TEXT,
    target_ids LIST<UUID>,
    message TEXT,
    PRIMARY KEY ((bucket), created_at, entry_id)
) WITH CLUSTERING ORDER BY (created_at DESC, entry_id ASC)
"""

AUTH_TABLES_CQL = [
    USER_TABLE_CQL,
    USERS_ROLE_INDEX_CQL,
    USERS_BY_EMAIL_TABLE_CQL,
    ACCOUNT_TABLE_CQL,
    ACCOUNTS_BY_USER_TABLE_CQL,
    SESSION_TABLE_CQL,
    SESSIONS_BY_USER_TABLE_CQL,
    VERIFICATION_TOKEN_TABLE_CQL,
    ADMIN_AUDIT_LOG_TABLE_CQL,
]


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# Email verification variant
# ==============================================================================


@dataclass(frozen=True)
class NeverAttempted:
    """No verification has ever been recorded."""


@dataclass(frozen=True)
class ExplicitlyDeclined:
    """The provider reported the address as explicitly unverified."""


@dataclass(frozen=True)
class VerifiedAt:
    """The address was verified at ``timestamp``."""

    timestamp: datetime


EmailVerification = NeverAttempted | ExplicitlyDeclined | VerifiedAt

NEVER_ATTEMPTED = NeverAttempted()
EXPLICITLY_DECLINED = ExplicitlyDeclined()


def email_verification_to_columns(
    verification: EmailVerification,
) -> tuple[bool | None, datetime | None]:
    """Map the variant to the ``(email_verified, email_verified_at)`` columns."""
    if isinstance(verification, VerifiedAt):
        return True, verification.timestamp
    if isinstance(verification, ExplicitlyDeclined):
        return False, None
    return None, None


def email_verification_from_columns(
    verified: bool | None, verified_at: datetime | None
) -> EmailVerification:
    """Rebuild the variant from its stored columns."""
    if verified_at is not None:
        return VerifiedAt(ensure_utc_aware(verified_at))
    if verified is False:
        return EXPLICITLY_DECLINED
    return NEVER_ATTEMPTED


def collapse_email_verification(verification: EmailVerification) -> datetime | None:
    """Two-state view used by session providers.

    This is lossy: ExplicitlyDeclined and NeverAttempted both become None.
    """
    if isinstance(verification, VerifiedAt):
        return verification.timestamp
    return None


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class User:
    """Extended user record with role, status and tri-state verification."""

    id: UUID
    email: str
    name: str | None = None
    image: str | None = None
    email_verification: EmailVerification = NEVER_ATTEMPTED
    role: Role = DEFAULT_ROLE
    status: UserStatus = DEFAULT_STATUS
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User from Cassandra row."""
        return cls(
            id=row.id,
            email=row.email,
            name=row.name,
            image=row.image,
            email_verification=email_verification_from_columns(
                row.email_verified, row.email_verified_at
            ),
            role=resolve_role(row.role),
            status=resolve_status(row.status),
            created_at=ensure_utc_aware(row.created_at),
            updated_at=ensure_utc_aware(row.updated_at or row.created_at),
        )


@dataclass
class LinkedAccount:
    """Binding between a user and an external identity provider.

    Token fields are opaque provider data and are stored as received.
    """

    user_id: UUID
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

    @property
    def key(self) -> tuple[str, str]:
        return self.provider, self.provider_account_id

    @classmethod
    def from_row(cls, row: Any) -> "LinkedAccount":
        """Create LinkedAccount from Cassandra row."""
        return cls(
            user_id=row.user_id,
            type=row.type,
            provider=row.provider,
            provider_account_id=row.provider_account_id,
            refresh_token=row.refresh_token,
            access_token=row.access_token,
            expires_at=row.expires_at,
            token_type=row.token_type,
            scope=row.scope,
            id_token=row.id_token,
            session_state=row.session_state,
        )


@dataclass
class Session:
    """Opaque session token bound to a user."""

    session_token: str
    user_id: UUID
    expires: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires <= (now or datetime.now(UTC))

    @classmethod
    def from_row(cls, row: Any) -> "Session":
        return cls(
            session_token=row.session_token,
            user_id=row.user_id,
            expires=ensure_utc_aware(row.expires),
        )


@dataclass
class VerificationToken:
    """Single-use token keyed by ``(identifier, token)``."""

    identifier: str
    token: str
    expires: datetime

    @property
    def key(self) -> tuple[str, str]:
        return self.identifier, self.token

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires <= (now or datetime.now(UTC))

    @classmethod
    def from_row(cls, row: Any) -> "VerificationToken":
        return cls(
            identifier=row.identifier,
            token=row.token,
            expires=ensure_utc_aware(row.expires),
        )


@dataclass
class AdminAuditEntry:
    """Append-only record of a user administration action."""

    entry_id: UUID
    actor_id: UUID
    action: str
    target_ids: list[UUID]
    message: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "AdminAuditEntry":
        return cls(
            entry_id=row.entry_id,
            actor_id=row.actor_id,
            action=row.action,
            target_ids=list(row.target_ids or []),
            message=row.message,
            created_at=ensure_utc_aware(row.created_at),
        )


def create_user(
    email: str,
    name: str | None = None,
    image: str | None = None,
    email_verification: EmailVerification = NEVER_ATTEMPTED,
    role: Role = DEFAULT_ROLE,
    status: UserStatus = DEFAULT_STATUS,
) -> User:
    """Factory for a new user record with a fresh id."""
    now = datetime.now(UTC)
    return User(
        id=uuid4(),
        email=email,
        name=name,
        image=image,
        email_verification=email_verification,
        role=role,
        status=status,
        created_at=now,
        updated_at=now,
    )


def create_audit_entry(
    actor_id: UUID, action: str, target_ids: list[UUID], message: str
) -> AdminAuditEntry:
    """Factory for an admin audit entry stamped with the current time."""
    return AdminAuditEntry(
        entry_id=uuid4(),
        actor_id=actor_id,
        action=action,
        target_ids=list(target_ids),
        message=message,
        created_at=datetime.now(UTC),
    )
