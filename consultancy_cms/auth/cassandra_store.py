"""Cassandra-backed identity store.

Uniqueness and consume-once rules rely on lightweight transactions:
- ``INSERT ... IF NOT EXISTS`` on users_by_email, accounts, sessions and
  verification_tokens raises ConflictError when not applied
- ``UPDATE/DELETE ... IF EXISTS`` raises NotFoundError when not applied
- verification tokens are consumed with a single ``DELETE ... IF EXISTS``,
  so only one concurrent caller sees ``[applied] = True``

The user delete cascade is a LOGGED batch so it is all-or-nothing.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from cassandra.query import BatchStatement, BatchType

from consultancy_cms.auth.models import (
    AdminAuditEntry,
    LinkedAccount,
    Session,
    User,
    VerificationToken,
    email_verification_to_columns,
)
from consultancy_cms.auth.permissions import Role
from consultancy_cms.auth.store import IdentityStore
from consultancy_cms.core.exceptions import ConflictError, NotFoundError


if TYPE_CHECKING:
    from cassandra.cluster import Session as CassandraSession


logger = structlog.get_logger(__name__)

# All audit entries share one partition; the trail is small and read newest-first
AUDIT_BUCKET = "admin"


class CassandraIdentityStore(IdentityStore):
    """Identity store over the tables in ``AUTH_TABLES_CQL``."""

    def __init__(self, session: "CassandraSession", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        ks = self.keyspace

        # Users
        self._claim_email = self.session.prepare(f"""
            INSERT INTO {ks}.users_by_email (email, user_id)
            VALUES (?, ?) IF NOT EXISTS
        """)
        self._release_email = self.session.prepare(f"""
            DELETE FROM {ks}.users_by_email WHERE email = ?
        """)
        self._insert_user = self.session.prepare(f"""
            INSERT INTO {ks}.users
            (id, email, name, image, email_verified, email_verified_at,
             role, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_user = self.session.prepare(f"""
            UPDATE {ks}.users
            SET email = ?, name = ?, image = ?, email_verified = ?,
                email_verified_at = ?, role = ?, status = ?, updated_at = ?
            WHERE id = ? IF EXISTS
        """)
        self._get_user = self.session.prepare(f"""
            SELECT * FROM {ks}.users WHERE id = ?
        """)
        self._get_user_id_by_email = self.session.prepare(f"""
            SELECT user_id FROM {ks}.users_by_email WHERE email = ?
        """)
        self._list_users_by_role = self.session.prepare(f"""
            SELECT * FROM {ks}.users WHERE role = ?
        """)
        self._delete_user = self.session.prepare(f"""
            DELETE FROM {ks}.users WHERE id = ?
        """)

        # Accounts
        self._insert_account = self.session.prepare(f"""
            INSERT INTO {ks}.accounts
            (provider, provider_account_id, user_id, type, refresh_token,
             access_token, expires_at, token_type, scope, id_token, session_state)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) IF NOT EXISTS
        """)
        self._insert_account_by_user = self.session.prepare(f"""
            INSERT INTO {ks}.accounts_by_user (user_id, provider, provider_account_id)
            VALUES (?, ?, ?)
        """)
        self._get_account = self.session.prepare(f"""
            SELECT * FROM {ks}.accounts
            WHERE provider = ? AND provider_account_id = ?
        """)
        self._get_account_keys_by_user = self.session.prepare(f"""
            SELECT provider, provider_account_id FROM {ks}.accounts_by_user
            WHERE user_id = ?
        """)
        self._update_account = self.session.prepare(f"""
            UPDATE {ks}.accounts
            SET type = ?, refresh_token = ?, access_token = ?, expires_at = ?,
                token_type = ?, scope = ?, id_token = ?, session_state = ?
            WHERE provider = ? AND provider_account_id = ? IF EXISTS
        """)
        self._delete_account = self.session.prepare(f"""
            DELETE FROM {ks}.accounts
            WHERE provider = ? AND provider_account_id = ? IF EXISTS
        """)
        self._delete_account_plain = self.session.prepare(f"""
            DELETE FROM {ks}.accounts
            WHERE provider = ? AND provider_account_id = ?
        """)
        self._delete_account_by_user = self.session.prepare(f"""
            DELETE FROM {ks}.accounts_by_user
            WHERE user_id = ? AND provider = ? AND provider_account_id = ?
        """)
        self._delete_accounts_by_user = self.session.prepare(f"""
            DELETE FROM {ks}.accounts_by_user WHERE user_id = ?
        """)

        # Sessions
        self._insert_session = self.session.prepare(f"""
            INSERT INTO {ks}.sessions (session_token, user_id, expires)
            VALUES (?, ?, ?) IF NOT EXISTS
        """)
        self._insert_session_by_user = self.session.prepare(f"""
            INSERT INTO {ks}.sessions_by_user (user_id, session_token)
            VALUES (?, ?)
        """)
        self._get_session = self.session.prepare(f"""
            SELECT * FROM {ks}.sessions WHERE session_token = ?
        """)
        self._get_session_tokens_by_user = self.session.prepare(f"""
            SELECT session_token FROM {ks}.sessions_by_user WHERE user_id = ?
        """)
        self._update_session = self.session.prepare(f"""
            UPDATE {ks}.sessions SET user_id = ?, expires = ?
            WHERE session_token = ? IF EXISTS
        """)
        self._delete_session = self.session.prepare(f"""
            DELETE FROM {ks}.sessions WHERE session_token = ? IF EXISTS
        """)
        self._delete_session_plain = self.session.prepare(f"""
            DELETE FROM {ks}.sessions WHERE session_token = ?
        """)
        self._delete_session_by_user = self.session.prepare(f"""
            DELETE FROM {ks}.sessions_by_user WHERE user_id = ? AND session_token = ?
        """)
        self._delete_sessions_by_user = self.session.prepare(f"""
            DELETE FROM {ks}.sessions_by_user WHERE user_id = ?
        """)

        # Verification tokens
        self._insert_token = self.session.prepare(f"""
            INSERT INTO {ks}.verification_tokens (identifier, token, expires)
            VALUES (?, ?, ?) IF NOT EXISTS
        """)
        self._get_token = self.session.prepare(f"""
            SELECT * FROM {ks}.verification_tokens
            WHERE identifier = ? AND token = ?
        """)
        self._delete_token = self.session.prepare(f"""
            DELETE FROM {ks}.verification_tokens
            WHERE identifier = ? AND token = ? IF EXISTS
        """)

        # Audit
        self._insert_audit = self.session.prepare(f"""
            INSERT INTO {ks}.admin_audit_log
            (bucket, created_at, entry_id, actor_id, action, target_ids, message)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._list_audit = self.session.prepare(f"""
            SELECT * FROM {ks}.admin_audit_log WHERE bucket = ? LIMIT ?
        """)

    # ==========================================================================
    # Users
    # ==========================================================================

    def _user_values(self, user: User) -> list:
        verified, verified_at = email_verification_to_columns(user.email_verification)
        return [
            user.email,
            user.name,
            user.image,
            verified,
            verified_at,
            user.role.value,
            user.status.value,
        ]

    async def insert_user(self, user: User) -> None:
        claim = await self.session.aexecute(self._claim_email, [user.email, user.id])
        if not claim.was_applied:
            raise ConflictError(f"A user with email {user.email} already exists")

        try:
            await self.session.aexecute(
                self._insert_user,
                [user.id, *self._user_values(user), user.created_at, user.updated_at],
            )
        except Exception:
            # The user row was never written; release the email claim
            await self.session.aexecute(self._release_email, [user.email])
            logger.warning("user_insert_failed_email_released", email=user.email)
            raise

    async def get_user(self, user_id: UUID) -> User | None:
        row = (await self.session.aexecute(self._get_user, [user_id])).one()
        return User.from_row(row) if row else None

    async def get_user_by_email(self, email: str) -> User | None:
        row = (await self.session.aexecute(self._get_user_id_by_email, [email])).one()
        return await self.get_user(row.user_id) if row else None

    async def update_user(self, user: User, previous_email: str) -> None:
        email_changed = user.email != previous_email
        if email_changed:
            claim = await self.session.aexecute(
                self._claim_email, [user.email, user.id]
            )
            if not claim.was_applied:
                raise ConflictError(f"A user with email {user.email} already exists")

        result = await self.session.aexecute(
            self._update_user, [*self._user_values(user), user.updated_at, user.id]
        )
        if not result.was_applied:
            if email_changed:
                await self.session.aexecute(self._release_email, [user.email])
            raise NotFoundError("User not found")

        if email_changed:
            await self.session.aexecute(self._release_email, [previous_email])

    async def delete_user_cascade(self, user_id: UUID) -> None:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")

        account_keys = await self.session.aexecute(
            self._get_account_keys_by_user, [user_id]
        )
        session_tokens = await self.session.aexecute(
            self._get_session_tokens_by_user, [user_id]
        )

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        for row in account_keys:
            batch.add(
                self._delete_account_plain, [row.provider, row.provider_account_id]
            )
        batch.add(self._delete_accounts_by_user, [user_id])
        for row in session_tokens:
            batch.add(self._delete_session_plain, [row.session_token])
        batch.add(self._delete_sessions_by_user, [user_id])
        batch.add(self._release_email, [user.email])
        batch.add(self._delete_user, [user_id])
        await self.session.aexecute(batch)

        logger.info("user_deleted_with_cascade", user_id=str(user_id))

    async def list_users_by_role(self, role: Role) -> list[User]:
        rows = await self.session.aexecute(self._list_users_by_role, [role.value])
        return [User.from_row(row) for row in rows]

    # ==========================================================================
    # Accounts
    # ==========================================================================

    async def insert_account(self, account: LinkedAccount) -> None:
        result = await self.session.aexecute(
            self._insert_account,
            [
                account.provider,
                account.provider_account_id,
                account.user_id,
                account.type,
                account.refresh_token,
                account.access_token,
                account.expires_at,
                account.token_type,
                account.scope,
                account.id_token,
                account.session_state,
            ],
        )
        if not result.was_applied:
            raise ConflictError(
                f"Account {account.provider}:{account.provider_account_id} "
                "is already linked"
            )
        await self.session.aexecute(
            self._insert_account_by_user,
            [account.user_id, account.provider, account.provider_account_id],
        )

    async def get_account(
        self, provider: str, provider_account_id: str
    ) -> LinkedAccount | None:
        result = await self.session.aexecute(
            self._get_account, [provider, provider_account_id]
        )
        row = result.one()
        return LinkedAccount.from_row(row) if row else None

    async def get_accounts_by_user(self, user_id: UUID) -> list[LinkedAccount]:
        keys = await self.session.aexecute(self._get_account_keys_by_user, [user_id])
        accounts = []
        for key in keys:
            account = await self.get_account(key.provider, key.provider_account_id)
            if account is not None:
                accounts.append(account)
        return accounts

    async def update_account(self, account: LinkedAccount) -> None:
        result = await self.session.aexecute(
            self._update_account,
            [
                account.type,
                account.refresh_token,
                account.access_token,
                account.expires_at,
                account.token_type,
                account.scope,
                account.id_token,
                account.session_state,
                account.provider,
                account.provider_account_id,
            ],
        )
        if not result.was_applied:
            raise NotFoundError("Account not found")

    async def delete_account(self, provider: str, provider_account_id: str) -> None:
        existing = await self.get_account(provider, provider_account_id)
        if existing is None:
            raise NotFoundError("Account not found")
        result = await self.session.aexecute(
            self._delete_account, [provider, provider_account_id]
        )
        if not result.was_applied:
            raise NotFoundError("Account not found")
        await self.session.aexecute(
            self._delete_account_by_user,
            [existing.user_id, provider, provider_account_id],
        )

    # ==========================================================================
    # Sessions
    # ==========================================================================

    async def insert_session(self, session: Session) -> None:
        result = await self.session.aexecute(
            self._insert_session,
            [session.session_token, session.user_id, session.expires],
        )
        if not result.was_applied:
            raise ConflictError("Session token already exists")
        await self.session.aexecute(
            self._insert_session_by_user, [session.user_id, session.session_token]
        )

    async def get_session(self, session_token: str) -> Session | None:
        row = (await self.session.aexecute(self._get_session, [session_token])).one()
        return Session.from_row(row) if row else None

    async def update_session(self, session: Session) -> None:
        result = await self.session.aexecute(
            self._update_session,
            [session.user_id, session.expires, session.session_token],
        )
        if not result.was_applied:
            raise NotFoundError("Session not found")

    async def delete_session(self, session_token: str) -> None:
        existing = await self.get_session(session_token)
        if existing is None:
            raise NotFoundError("Session not found")
        result = await self.session.aexecute(self._delete_session, [session_token])
        if not result.was_applied:
            raise NotFoundError("Session not found")
        await self.session.aexecute(
            self._delete_session_by_user, [existing.user_id, session_token]
        )

    async def delete_sessions_for_user(self, user_id: UUID) -> int:
        rows = await self.session.aexecute(self._get_session_tokens_by_user, [user_id])
        tokens = [row.session_token for row in rows]
        if not tokens:
            return 0

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        for token in tokens:
            batch.add(self._delete_session_plain, [token])
        batch.add(self._delete_sessions_by_user, [user_id])
        await self.session.aexecute(batch)
        return len(tokens)

    # ==========================================================================
    # Verification tokens
    # ==========================================================================

    async def insert_verification_token(self, token: VerificationToken) -> None:
        result = await self.session.aexecute(
            self._insert_token, [token.identifier, token.token, token.expires]
        )
        if not result.was_applied:
            raise ConflictError("Verification token already exists")

    async def get_verification_token(
        self, identifier: str, token: str
    ) -> VerificationToken | None:
        row = (await self.session.aexecute(self._get_token, [identifier, token])).one()
        return VerificationToken.from_row(row) if row else None

    async def delete_verification_token(self, identifier: str, token: str) -> None:
        result = await self.session.aexecute(self._delete_token, [identifier, token])
        if not result.was_applied:
            raise NotFoundError("Verification token not found")

    async def consume_verification_token(
        self, identifier: str, token: str
    ) -> VerificationToken | None:
        stored = await self.get_verification_token(identifier, token)
        if stored is None:
            return None

        result = await self.session.aexecute(self._delete_token, [identifier, token])
        if not result.was_applied:
            # Another caller consumed it between our read and the delete
            return None
        return stored

    # ==========================================================================
    # Audit
    # ==========================================================================

    async def append_audit_entry(self, entry: AdminAuditEntry) -> None:
        await self.session.aexecute(
            self._insert_audit,
            [
                AUDIT_BUCKET,
                entry.created_at,
                entry.entry_id,
                entry.actor_id,
                entry.action,
                entry.target_ids,
                entry.message,
            ],
        )

    async def list_audit_entries(self, limit: int = 50) -> list[AdminAuditEntry]:
        rows = await self.session.aexecute(self._list_audit, [AUDIT_BUCKET, limit])
        return [AdminAuditEntry.from_row(row) for row in rows]
