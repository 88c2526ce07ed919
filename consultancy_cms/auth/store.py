"""Identity store contract and its in-memory implementation.

Stores speak in entities from ``consultancy_cms.auth.models`` and report
backend conditions with the shared error kinds:
- ConflictError for a duplicate email, provider pair, session token or
  verification token
- NotFoundError when an update or delete targets a missing row
- ``None`` for plain lookup misses
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import replace
from uuid import UUID

from consultancy_cms.auth.models import (
    AdminAuditEntry,
    LinkedAccount,
    Session,
    User,
    VerificationToken,
)
from consultancy_cms.auth.permissions import Role
from consultancy_cms.core.exceptions import ConflictError, NotFoundError


class IdentityStore(ABC):
    """Interface for identity persistence backends."""

    # Users

    @abstractmethod
    async def insert_user(self, user: User) -> None:
        """Persist a new user; ConflictError if the email is taken."""

    @abstractmethod
    async def get_user(self, user_id: UUID) -> User | None:
        """Return the user with ``user_id``."""

    @abstractmethod
    async def get_user_by_email(self, email: str) -> User | None:
        """Return the user owning the normalized ``email``."""

    @abstractmethod
    async def update_user(self, user: User, previous_email: str) -> None:
        """Replace a stored user.

        ``previous_email`` is the address currently stored, so a changed
        email can be moved in the uniqueness index.
        """

    @abstractmethod
    async def delete_user_cascade(self, user_id: UUID) -> None:
        """Delete a user with all linked accounts and sessions atomically."""

    @abstractmethod
    async def list_users_by_role(self, role: Role) -> list[User]:
        """Return every user holding ``role``, whatever their status."""

    # Linked accounts

    @abstractmethod
    async def insert_account(self, account: LinkedAccount) -> None:
        """Persist a provider binding; ConflictError if the pair is linked."""

    @abstractmethod
    async def get_account(
        self, provider: str, provider_account_id: str
    ) -> LinkedAccount | None:
        """Return the binding for the provider pair."""

    @abstractmethod
    async def get_accounts_by_user(self, user_id: UUID) -> list[LinkedAccount]:
        """Return every binding of a user."""

    @abstractmethod
    async def update_account(self, account: LinkedAccount) -> None:
        """Replace a stored binding."""

    @abstractmethod
    async def delete_account(self, provider: str, provider_account_id: str) -> None:
        """Delete a binding by its provider pair."""

    # Sessions

    @abstractmethod
    async def insert_session(self, session: Session) -> None:
        """Persist a new session."""

    @abstractmethod
    async def get_session(self, session_token: str) -> Session | None:
        """Return the stored session, expired or not."""

    @abstractmethod
    async def update_session(self, session: Session) -> None:
        """Replace a stored session."""

    @abstractmethod
    async def delete_session(self, session_token: str) -> None:
        """Delete a session by token."""

    @abstractmethod
    async def delete_sessions_for_user(self, user_id: UUID) -> int:
        """Delete all sessions of a user and return how many were removed."""

    # Verification tokens

    @abstractmethod
    async def insert_verification_token(self, token: VerificationToken) -> None:
        """Persist a new verification token."""

    @abstractmethod
    async def get_verification_token(
        self, identifier: str, token: str
    ) -> VerificationToken | None:
        """Return a token without consuming it."""

    @abstractmethod
    async def delete_verification_token(self, identifier: str, token: str) -> None:
        """Delete a token; NotFoundError if it does not exist."""

    @abstractmethod
    async def consume_verification_token(
        self, identifier: str, token: str
    ) -> VerificationToken | None:
        """Delete and return a token in one conditional operation.

        Among concurrent callers exactly one receives the token, the rest
        receive ``None``.
        """

    # Admin audit trail

    @abstractmethod
    async def append_audit_entry(self, entry: AdminAuditEntry) -> None:
        """Append an entry to the admin audit trail."""

    @abstractmethod
    async def list_audit_entries(self, limit: int = 50) -> list[AdminAuditEntry]:
        """Return the most recent audit entries, newest first."""


class InMemoryIdentityStore(IdentityStore):
    """Process-local store for tests and local development.

    Every operation runs inside one lock, which makes multi-row changes
    such as the user delete cascade all-or-nothing.
    """

    def __init__(self, users: Iterable[User] = ()) -> None:
        self._lock = asyncio.Lock()
        self._users: dict[UUID, User] = {}
        self._user_ids_by_email: dict[str, UUID] = {}
        self._accounts: dict[tuple[str, str], LinkedAccount] = {}
        self._sessions: dict[str, Session] = {}
        self._tokens: dict[tuple[str, str], VerificationToken] = {}
        self._audit: list[AdminAuditEntry] = []
        for user in users:
            self._users[user.id] = replace(user)
            self._user_ids_by_email[user.email] = user.id

    async def insert_user(self, user: User) -> None:
        async with self._lock:
            if user.email in self._user_ids_by_email:
                raise ConflictError(f"A user with email {user.email} already exists")
            self._users[user.id] = replace(user)
            self._user_ids_by_email[user.email] = user.id

    async def get_user(self, user_id: UUID) -> User | None:
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def get_user_by_email(self, email: str) -> User | None:
        user_id = self._user_ids_by_email.get(email)
        return await self.get_user(user_id) if user_id else None

    async def update_user(self, user: User, previous_email: str) -> None:
        async with self._lock:
            if user.id not in self._users:
                raise NotFoundError("User not found")
            if user.email != previous_email:
                owner = self._user_ids_by_email.get(user.email)
                if owner is not None and owner != user.id:
                    raise ConflictError(
                        f"A user with email {user.email} already exists"
                    )
                self._user_ids_by_email.pop(previous_email, None)
                self._user_ids_by_email[user.email] = user.id
            self._users[user.id] = replace(user)

    async def delete_user_cascade(self, user_id: UUID) -> None:
        async with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                raise NotFoundError("User not found")
            self._user_ids_by_email.pop(user.email, None)
            for key in [k for k, a in self._accounts.items() if a.user_id == user_id]:
                del self._accounts[key]
            for token in [t for t, s in self._sessions.items() if s.user_id == user_id]:
                del self._sessions[token]

    async def list_users_by_role(self, role: Role) -> list[User]:
        return [replace(user) for user in self._users.values() if user.role == role]

    async def insert_account(self, account: LinkedAccount) -> None:
        async with self._lock:
            if account.key in self._accounts:
                raise ConflictError(
                    f"Account {account.provider}:{account.provider_account_id} "
                    "is already linked"
                )
            self._accounts[account.key] = replace(account)

    async def get_account(
        self, provider: str, provider_account_id: str
    ) -> LinkedAccount | None:
        account = self._accounts.get((provider, provider_account_id))
        return replace(account) if account else None

    async def get_accounts_by_user(self, user_id: UUID) -> list[LinkedAccount]:
        return [replace(a) for a in self._accounts.values() if a.user_id == user_id]

    async def update_account(self, account: LinkedAccount) -> None:
        async with self._lock:
            if account.key not in self._accounts:
                raise NotFoundError("Account not found")
            self._accounts[account.key] = replace(account)

    async def delete_account(self, provider: str, provider_account_id: str) -> None:
        async with self._lock:
            if self._accounts.pop((provider, provider_account_id), None) is None:
                raise NotFoundError("Account not found")

    async def insert_session(self, session: Session) -> None:
        async with self._lock:
            if session.session_token in self._sessions:
                raise ConflictError("Session token already exists")
            self._sessions[session.session_token] = replace(session)

    async def get_session(self, session_token: str) -> Session | None:
        session = self._sessions.get(session_token)
        return replace(session) if session else None

    async def update_session(self, session: Session) -> None:
        async with self._lock:
            if session.session_token not in self._sessions:
                raise NotFoundError("Session not found")
            self._sessions[session.session_token] = replace(session)

    async def delete_session(self, session_token: str) -> None:
        async with self._lock:
            if self._sessions.pop(session_token, None) is None:
                raise NotFoundError("Session not found")

    async def delete_sessions_for_user(self, user_id: UUID) -> int:
        async with self._lock:
            tokens = [t for t, s in self._sessions.items() if s.user_id == user_id]
            for token in tokens:
                del self._sessions[token]
            return len(tokens)

    async def insert_verification_token(self, token: VerificationToken) -> None:
        async with self._lock:
            if token.key in self._tokens:
                raise ConflictError("Verification token already exists")
            self._tokens[token.key] = replace(token)

    async def get_verification_token(
        self, identifier: str, token: str
    ) -> VerificationToken | None:
        stored = self._tokens.get((identifier, token))
        return replace(stored) if stored else None

    async def delete_verification_token(self, identifier: str, token: str) -> None:
        async with self._lock:
            if self._tokens.pop((identifier, token), None) is None:
                raise NotFoundError("Verification token not found")

    async def consume_verification_token(
        self, identifier: str, token: str
    ) -> VerificationToken | None:
        async with self._lock:
            return self._tokens.pop((identifier, token), None)

    async def append_audit_entry(self, entry: AdminAuditEntry) -> None:
        async with self._lock:
            self._audit.append(replace(entry))

    async def list_audit_entries(self, limit: int = 50) -> list[AdminAuditEntry]:
        newest_first = sorted(self._audit, key=lambda e: e.created_at, reverse=True)
        return [replace(entry) for entry in newest_first[:limit]]
