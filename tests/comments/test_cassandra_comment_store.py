"""Tests for the Cassandra comment store with a mocked session."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch
from uuid import uuid4

import pytest
from cassandra.cluster import Session
from cassandra.query import BatchType

from consultancy_cms.comments.cassandra_store import (
    CassandraCommentStore,
    CassandraPostDirectory,
)
from consultancy_cms.comments.models import CommentStatus
from consultancy_cms.core.exceptions import NotFoundError


def _result(applied: bool = True, rows: list | None = None) -> Mock:
    rows = rows or []
    result = Mock()
    result.was_applied = applied
    result.one = Mock(return_value=rows[0] if rows else None)
    result.__iter__ = Mock(return_value=iter(rows))
    return result


def _comment_row(**overrides) -> SimpleNamespace:
    now = datetime(2024, 5, 1, tzinfo=UTC)
    row = {
        "comment_id": uuid4(),
        "post_id": uuid4(),
        "parent_id": None,
        "author_id": None,
        "content": "Hello",
        "status": "PENDING",
        "created_at": now,
        "updated_at": None,
    }
    row.update(overrides)
    return SimpleNamespace(**row)


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(return_value=Mock())
    session.aexecute = AsyncMock(return_value=_result())
    return session


@pytest.fixture
def store(mock_session) -> CassandraCommentStore:
    return CassandraCommentStore(mock_session, "test_keyspace")


class TestCompareAndSet:
    @pytest.mark.asyncio
    async def test_applied(self, store, mock_session) -> None:
        comment_id = uuid4()
        now = datetime.now(UTC)

        applied = await store.compare_and_set_status(
            comment_id, CommentStatus.PENDING, CommentStatus.APPROVED, now
        )

        assert applied is True
        mock_session.aexecute.assert_awaited_once_with(
            store._set_status, ["APPROVED", now, comment_id, "PENDING"]
        )

    @pytest.mark.asyncio
    async def test_lost_race(self, store, mock_session) -> None:
        mock_session.aexecute.return_value = _result(applied=False)

        applied = await store.compare_and_set_status(
            uuid4(), CommentStatus.PENDING, CommentStatus.SPAM, datetime.now(UTC)
        )

        assert applied is False


class TestReads:
    @pytest.mark.asyncio
    async def test_get_comment_from_row(self, store, mock_session) -> None:
        row = _comment_row(status="APPROVED")
        mock_session.aexecute.return_value = _result(rows=[row])

        comment = await store.get_comment(row.comment_id)

        assert comment.id == row.comment_id
        assert comment.status == CommentStatus.APPROVED
        # Missing updated_at falls back to created_at
        assert comment.updated_at == row.created_at

    @pytest.mark.asyncio
    async def test_find_by_post_uses_index_query(self, store, mock_session) -> None:
        post_id = uuid4()
        mock_session.aexecute.return_value = _result(
            rows=[_comment_row(post_id=post_id), _comment_row(post_id=post_id)]
        )

        comments = await store.find_comments(post_id)

        assert len(comments) == 2
        mock_session.aexecute.assert_awaited_once_with(
            store._list_comments_by_post, [post_id]
        )

    @pytest.mark.asyncio
    async def test_post_directory(self, mock_session) -> None:
        post_id = uuid4()
        mock_session.aexecute.return_value = _result(
            rows=[SimpleNamespace(id=post_id, title="Hello", slug="hello")]
        )
        directory = CassandraPostDirectory(mock_session, "test_keyspace")

        post = await directory.get_post(post_id)

        assert post.slug == "hello"


class TestDeleteCascade:
    @pytest.mark.asyncio
    async def test_missing_comment(self, store) -> None:
        with pytest.raises(NotFoundError):
            await store.delete_comment_cascade(uuid4())

    @pytest.mark.asyncio
    async def test_deletes_comment_and_replies_in_one_batch(
        self, store, mock_session
    ) -> None:
        parent = _comment_row()
        reply_ids = [uuid4(), uuid4()]
        mock_session.aexecute.side_effect = [
            _result(rows=[parent]),
            _result(rows=[SimpleNamespace(comment_id=r) for r in reply_ids]),
            _result(),
        ]

        with patch(
            "consultancy_cms.comments.cassandra_store.BatchStatement"
        ) as batch_cls:
            deleted = await store.delete_comment_cascade(parent.comment_id)

        assert deleted == [parent.comment_id, *reply_ids]
        batch_cls.assert_called_once_with(batch_type=BatchType.LOGGED)
        assert batch_cls.return_value.add.call_count == 3
