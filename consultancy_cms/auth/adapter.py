"""Identity adapter between the session provider and the CMS user model.

The session provider speaks a generic vocabulary (users, accounts,
sessions, verification tokens, ``emailVerified`` as ``Date | null``). The
CMS user record adds a role, a status and tri-state email verification.
This adapter is the only place the two shapes meet.

Email verification normalization on input:
- ``False`` is stored as ExplicitlyDeclined
- ``None``, a missing key and other falsy values are NeverAttempted
- a datetime, ISO-8601 string or epoch-milliseconds number is VerifiedAt
- any other truthy value, including a non-timestamp string such as
  ``"true"``, is VerifiedAt(now)

Timestamps are stored in UTC. A naive datetime is taken to be UTC and reads
back tz-aware, so it round-trips to an equal instant but not to an equal
naive object.

On output ExplicitlyDeclined collapses to ``None`` because the provider
contract has no third state. Use ``get_email_verification`` when the
distinction matters.
"""

import contextlib
from collections.abc import Mapping
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import EmailStr, TypeAdapter, ValidationError

from consultancy_cms.auth.models import (
    EXPLICITLY_DECLINED,
    NEVER_ATTEMPTED,
    EmailVerification,
    LinkedAccount,
    Session,
    VerificationToken,
    VerifiedAt,
    create_user,
    ensure_utc_aware,
)
from consultancy_cms.auth.permissions import (
    DEFAULT_ROLE,
    DEFAULT_STATUS,
    Role,
    UserStatus,
)
from consultancy_cms.auth.schemas import (
    AdapterAccount,
    AdapterSession,
    AdapterUser,
    AdapterVerificationToken,
)
from consultancy_cms.auth.store import IdentityStore
from consultancy_cms.core.exceptions import InvalidFieldError, NotFoundError
from consultancy_cms.core.logging import get_logger


logger = get_logger(__name__)

_email_adapter = TypeAdapter(EmailStr)

ACCOUNT_TOKEN_FIELDS = (
    "type",
    "refresh_token",
    "access_token",
    "expires_at",
    "token_type",
    "scope",
    "id_token",
    "session_state",
)


def normalize_email(value: Any) -> str:
    """Validate an email address and return it trimmed and lower-cased."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidFieldError("email", "Email is required")
    candidate = value.strip()
    try:
        _email_adapter.validate_python(candidate)
    except ValidationError as e:
        raise InvalidFieldError("email", "Email address is not valid") from e
    return candidate.lower()


def normalize_email_verified(
    value: Any, now: datetime | None = None
) -> EmailVerification:
    """Turn a provider ``emailVerified`` value into the tri-state variant."""
    if value is False:
        return EXPLICITLY_DECLINED
    if not value:
        return NEVER_ATTEMPTED
    if isinstance(value, datetime):
        return VerifiedAt(ensure_utc_aware(value))
    if isinstance(value, str):
        try:
            return VerifiedAt(ensure_utc_aware(datetime.fromisoformat(value)))
        except ValueError:
            return VerifiedAt(now or datetime.now(UTC))
    if isinstance(value, int | float) and not isinstance(value, bool):
        return VerifiedAt(datetime.fromtimestamp(value / 1000, tz=UTC))
    return VerifiedAt(now or datetime.now(UTC))


def _parse_id(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _require(data: Mapping[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise InvalidFieldError(key, f"'{key}' is required")
    return value


def _parse_expires(value: Any, field: str = "expires") -> datetime:
    if isinstance(value, datetime):
        return ensure_utc_aware(value)
    if isinstance(value, str):
        try:
            return ensure_utc_aware(datetime.fromisoformat(value))
        except ValueError as e:
            raise InvalidFieldError(field, f"'{field}' is not a valid timestamp") from e
    raise InvalidFieldError(field, f"'{field}' is required")


def _patch_role(value: Any) -> Role:
    # Present-but-empty is rejected rather than reset to the default
    if value is None or value == "":
        raise InvalidFieldError("role", "Role cannot be empty")
    try:
        return Role(value)
    except ValueError as e:
        raise InvalidFieldError("role", f"Unknown role: {value}") from e


def _patch_status(value: Any) -> UserStatus:
    if value is None or value == "":
        raise InvalidFieldError("status", "Status cannot be empty")
    try:
        return UserStatus(value)
    except ValueError as e:
        raise InvalidFieldError("status", f"Unknown status: {value}") from e


class IdentityAdapter:
    """Session-provider adapter over an ``IdentityStore``."""

    def __init__(self, store: IdentityStore):
        self.store = store

    # ==========================================================================
    # Users
    # ==========================================================================

    async def create_user(self, data: Mapping[str, Any]) -> AdapterUser:
        """Create a user on first sign-in.

        Role and status are optional in ``data``; when the keys are absent
        the defaults (VIEWER, ACTIVE) apply.

        Raises:
            InvalidFieldError: Email missing or malformed.
            ConflictError: Email already registered.
        """
        role = _patch_role(data["role"]) if "role" in data else DEFAULT_ROLE
        status = (
            _patch_status(data["status"]) if "status" in data else DEFAULT_STATUS
        )
        user = create_user(
            email=normalize_email(data.get("email")),
            name=data.get("name"),
            image=data.get("image"),
            email_verification=normalize_email_verified(data.get("email_verified")),
            role=role,
            status=status,
        )
        await self.store.insert_user(user)
        logger.info("user_created", user_id=str(user.id), role=user.role.value)
        return AdapterUser.from_user(user)

    async def get_user(self, user_id: str) -> AdapterUser | None:
        uid = _parse_id(user_id)
        user = await self.store.get_user(uid) if uid else None
        return AdapterUser.from_user(user) if user else None

    async def get_user_by_email(self, email: str) -> AdapterUser | None:
        if not isinstance(email, str):
            return None
        user = await self.store.get_user_by_email(email.strip().lower())
        return AdapterUser.from_user(user) if user else None

    async def get_user_by_account(
        self, provider: str, provider_account_id: str
    ) -> AdapterUser | None:
        account = await self.store.get_account(provider, provider_account_id)
        if account is None:
            return None
        user = await self.store.get_user(account.user_id)
        return AdapterUser.from_user(user) if user else None

    async def get_email_verification(self, user_id: str) -> EmailVerification | None:
        """Return the uncollapsed verification state, or None for a missing user."""
        uid = _parse_id(user_id)
        user = await self.store.get_user(uid) if uid else None
        return user.email_verification if user else None

    async def update_user(self, data: Mapping[str, Any]) -> AdapterUser:
        """Patch only the keys present in ``data``.

        Raises:
            InvalidFieldError: ``id`` missing, or role/status present but empty.
            NotFoundError: No user with that id.
            ConflictError: New email already registered.
        """
        uid = _parse_id(_require(data, "id"))
        current = await self.store.get_user(uid) if uid else None
        if current is None:
            raise NotFoundError("User not found")

        changes: dict[str, Any] = {}
        if "email" in data:
            changes["email"] = normalize_email(data["email"])
        if "name" in data:
            changes["name"] = data["name"]
        if "image" in data:
            changes["image"] = data["image"]
        if "email_verified" in data:
            changes["email_verification"] = normalize_email_verified(
                data["email_verified"]
            )
        if "role" in data:
            changes["role"] = _patch_role(data["role"])
        if "status" in data:
            changes["status"] = _patch_status(data["status"])

        updated = replace(current, **changes, updated_at=datetime.now(UTC))
        await self.store.update_user(updated, previous_email=current.email)
        logger.info("user_updated", user_id=str(uid), fields=sorted(changes))
        return AdapterUser.from_user(updated)

    async def delete_user(self, user_id: str) -> None:
        """Delete a user together with its accounts and sessions."""
        uid = _parse_id(user_id)
        if uid is None:
            raise NotFoundError("User not found")
        await self.store.delete_user_cascade(uid)
        logger.info("user_deleted", user_id=str(uid))

    # ==========================================================================
    # Accounts
    # ==========================================================================

    async def link_account(self, data: Mapping[str, Any]) -> AdapterAccount:
        """Bind an external provider identity to a user.

        Raises:
            ConflictError: The provider pair is already linked.
            NotFoundError: The referenced user does not exist.
        """
        uid = _parse_id(_require(data, "user_id"))
        if uid is None or await self.store.get_user(uid) is None:
            raise NotFoundError("User not found")

        account = LinkedAccount(
            user_id=uid,
            type=_require(data, "type"),
            provider=_require(data, "provider"),
            provider_account_id=str(_require(data, "provider_account_id")),
            **{key: data.get(key) for key in ACCOUNT_TOKEN_FIELDS if key != "type"},
        )
        await self.store.insert_account(account)
        logger.info("account_linked", user_id=str(uid), provider=account.provider)
        return AdapterAccount.from_account(account)

    create_account = link_account

    async def get_account(
        self, provider: str, provider_account_id: str
    ) -> AdapterAccount | None:
        account = await self.store.get_account(provider, provider_account_id)
        return AdapterAccount.from_account(account) if account else None

    async def get_account_by_user_id(self, user_id: str) -> AdapterAccount | None:
        uid = _parse_id(user_id)
        accounts = await self.store.get_accounts_by_user(uid) if uid else []
        return AdapterAccount.from_account(accounts[0]) if accounts else None

    async def update_account(self, data: Mapping[str, Any]) -> AdapterAccount:
        provider = _require(data, "provider")
        provider_account_id = str(_require(data, "provider_account_id"))
        current = await self.store.get_account(provider, provider_account_id)
        if current is None:
            raise NotFoundError("Account not found")

        updated = replace(
            current, **{key: data[key] for key in ACCOUNT_TOKEN_FIELDS if key in data}
        )
        await self.store.update_account(updated)
        return AdapterAccount.from_account(updated)

    async def delete_account(self, provider: str, provider_account_id: str) -> None:
        await self.store.delete_account(provider, provider_account_id)
        logger.info("account_unlinked", provider=provider)

    # ==========================================================================
    # Sessions
    # ==========================================================================

    async def create_session(self, data: Mapping[str, Any]) -> AdapterSession:
        uid = _parse_id(_require(data, "user_id"))
        if uid is None or await self.store.get_user(uid) is None:
            raise NotFoundError("User not found")

        session = Session(
            session_token=_require(data, "session_token"),
            user_id=uid,
            expires=_parse_expires(data.get("expires")),
        )
        await self.store.insert_session(session)
        logger.info("session_created", user_id=str(uid), expires=session.expires)
        return AdapterSession.from_session(session)

    async def _get_live_session(self, session_token: str) -> Session | None:
        session = await self.store.get_session(session_token)
        if session is None:
            return None
        if session.is_expired():
            # Lazy eviction; a concurrent reader may have removed it already
            with contextlib.suppress(NotFoundError):
                await self.store.delete_session(session_token)
            logger.debug("session_expired_evicted", user_id=str(session.user_id))
            return None
        return session

    async def get_session(self, session_token: str) -> AdapterSession | None:
        session = await self._get_live_session(session_token)
        return AdapterSession.from_session(session) if session else None

    async def get_session_and_user(
        self, session_token: str
    ) -> tuple[AdapterSession, AdapterUser] | None:
        session = await self._get_live_session(session_token)
        if session is None:
            return None
        user = await self.store.get_user(session.user_id)
        if user is None:
            return None
        return AdapterSession.from_session(session), AdapterUser.from_user(user)

    async def update_session(self, data: Mapping[str, Any]) -> AdapterSession:
        session_token = _require(data, "session_token")
        current = await self.store.get_session(session_token)
        if current is None:
            raise NotFoundError("Session not found")

        changes: dict[str, Any] = {}
        if "expires" in data:
            changes["expires"] = _parse_expires(data["expires"])
        if "user_id" in data:
            uid = _parse_id(data["user_id"])
            if uid is None:
                raise InvalidFieldError("user_id")
            changes["user_id"] = uid

        updated = replace(current, **changes)
        await self.store.update_session(updated)
        return AdapterSession.from_session(updated)

    async def delete_session(self, session_token: str) -> None:
        await self.store.delete_session(session_token)

    # ==========================================================================
    # Verification tokens
    # ==========================================================================

    async def create_verification_token(
        self, data: Mapping[str, Any]
    ) -> AdapterVerificationToken:
        token = VerificationToken(
            identifier=_require(data, "identifier"),
            token=_require(data, "token"),
            expires=_parse_expires(data.get("expires")),
        )
        await self.store.insert_verification_token(token)
        return AdapterVerificationToken.from_token(token)

    async def get_verification_token(
        self, identifier: str, token: str
    ) -> AdapterVerificationToken | None:
        stored = await self.store.get_verification_token(identifier, token)
        return AdapterVerificationToken.from_token(stored) if stored else None

    async def delete_verification_token(self, identifier: str, token: str) -> None:
        await self.store.delete_verification_token(identifier, token)

    async def use_verification_token(
        self, identifier: str, token: str
    ) -> AdapterVerificationToken | None:
        """Consume a token exactly once.

        Absent, already consumed and expired tokens all yield ``None``; an
        expired token is still removed.
        """
        consumed = await self.store.consume_verification_token(identifier, token)
        if consumed is None:
            return None
        if consumed.is_expired():
            logger.info("verification_token_expired", identifier=identifier)
            return None
        logger.info("verification_token_used", identifier=identifier)
        return AdapterVerificationToken.from_token(consumed)
