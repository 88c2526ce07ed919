"""Tests for the Cassandra identity store with a mocked session."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest
from cassandra.cluster import Session
from cassandra.query import BatchType

from consultancy_cms.auth.cassandra_store import CassandraIdentityStore
from consultancy_cms.auth.models import create_user
from consultancy_cms.auth.permissions import Role
from consultancy_cms.core.exceptions import ConflictError, NotFoundError


def _result(applied: bool = True, rows: list | None = None) -> Mock:
    """Fake ResultSet: iterable rows, ``one()`` and ``was_applied``."""
    rows = rows or []
    result = Mock()
    result.was_applied = applied
    result.one = Mock(return_value=rows[0] if rows else None)
    result.__iter__ = Mock(return_value=iter(rows))
    return result


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(name=cql.split()[0]))
    session.aexecute = AsyncMock(return_value=_result())
    return session


@pytest.fixture
def store(mock_session) -> CassandraIdentityStore:
    return CassandraIdentityStore(mock_session, "test_keyspace")


class TestUsers:
    @pytest.mark.asyncio
    async def test_insert_claims_email_first(self, store, mock_session) -> None:
        user = create_user(email="new@example.com")

        await store.insert_user(user)

        first_call = mock_session.aexecute.call_args_list[0]
        assert first_call.args[1] == ["new@example.com", user.id]
        assert mock_session.aexecute.await_count == 2

    @pytest.mark.asyncio
    async def test_insert_conflicts_when_email_taken(
        self, store, mock_session
    ) -> None:
        mock_session.aexecute.return_value = _result(applied=False)

        with pytest.raises(ConflictError):
            await store.insert_user(create_user(email="taken@example.com"))

        # The user row is never written
        assert mock_session.aexecute.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_insert_releases_email(self, store, mock_session) -> None:
        user = create_user(email="retry@example.com")
        mock_session.aexecute.side_effect = [
            _result(applied=True),  # claim email
            RuntimeError("write timeout"),  # insert user row
            _result(),  # release claim
        ]

        with pytest.raises(RuntimeError):
            await store.insert_user(user)

        assert mock_session.aexecute.await_count == 3
        release_call = mock_session.aexecute.call_args_list[2]
        assert release_call.args == (store._release_email, ["retry@example.com"])

    @pytest.mark.asyncio
    async def test_update_missing_user_releases_new_email(
        self, store, mock_session
    ) -> None:
        user = create_user(email="moved@example.com")
        mock_session.aexecute.side_effect = [
            _result(applied=True),  # claim new email
            _result(applied=False),  # update IF EXISTS
            _result(),  # release claim
        ]

        with pytest.raises(NotFoundError):
            await store.update_user(user, previous_email="old@example.com")

        release_call = mock_session.aexecute.call_args_list[2]
        assert release_call.args[1] == ["moved@example.com"]

    @pytest.mark.asyncio
    async def test_delete_cascade_uses_one_batch(self, store, mock_session) -> None:
        user = create_user(email="gone@example.com")
        user_row = SimpleNamespace(
            id=user.id,
            email=user.email,
            name=None,
            image=None,
            email_verified=None,
            email_verified_at=None,
            role="VIEWER",
            status="ACTIVE",
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        mock_session.aexecute.side_effect = [
            _result(rows=[user_row]),
            _result(
                rows=[SimpleNamespace(provider="google", provider_account_id="1")]
            ),
            _result(rows=[SimpleNamespace(session_token="tok")]),
            _result(),
        ]

        with patch("consultancy_cms.auth.cassandra_store.BatchStatement") as batch_cls:
            await store.delete_user_cascade(user.id)

        batch_cls.assert_called_once_with(batch_type=BatchType.LOGGED)
        batch = batch_cls.return_value
        # 1 account, its index row, 1 session, its index row, email claim, user
        assert batch.add.call_count == 6
        assert mock_session.aexecute.call_args_list[-1].args[0] is batch

    @pytest.mark.asyncio
    async def test_delete_cascade_missing_user(self, store, mock_session) -> None:
        with pytest.raises(NotFoundError):
            await store.delete_user_cascade(create_user(email="x@example.com").id)

    @pytest.mark.asyncio
    async def test_list_by_role_uses_role_index(self, store, mock_session) -> None:
        admins = await store.list_users_by_role(Role.ADMIN)

        assert admins == []
        mock_session.aexecute.assert_awaited_once_with(
            store._list_users_by_role, ["ADMIN"]
        )


class TestSessions:
    @pytest.mark.asyncio
    async def test_duplicate_token_conflicts(self, store, mock_session) -> None:
        mock_session.aexecute.return_value = _result(applied=False)
        session = SimpleNamespace(
            session_token="tok",
            user_id=create_user(email="s@example.com").id,
            expires=datetime.now(UTC),
        )

        with pytest.raises(ConflictError):
            await store.insert_session(session)

    @pytest.mark.asyncio
    async def test_revoke_without_sessions(self, store, mock_session) -> None:
        assert await store.delete_sessions_for_user(
            create_user(email="n@example.com").id
        ) == 0


class TestVerificationTokens:
    @pytest.mark.asyncio
    async def test_consume_loses_race(self, store, mock_session) -> None:
        row = SimpleNamespace(
            identifier="v@example.com",
            token="abc",
            expires=datetime.now(UTC) + timedelta(hours=1),
        )
        mock_session.aexecute.side_effect = [
            _result(rows=[row]),
            _result(applied=False),
        ]

        assert await store.consume_verification_token("v@example.com", "abc") is None

    @pytest.mark.asyncio
    async def test_consume_wins(self, store, mock_session) -> None:
        row = SimpleNamespace(
            identifier="v@example.com",
            token="abc",
            expires=datetime.now(UTC) + timedelta(hours=1),
        )
        mock_session.aexecute.side_effect = [
            _result(rows=[row]),
            _result(applied=True),
        ]

        consumed = await store.consume_verification_token("v@example.com", "abc")

        assert consumed.token == "abc"

    @pytest.mark.asyncio
    async def test_delete_missing_token(self, store, mock_session) -> None:
        mock_session.aexecute.return_value = _result(applied=False)
        with pytest.raises(NotFoundError):
            await store.delete_verification_token("v@example.com", "none")
