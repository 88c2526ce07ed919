"""Cassandra-backed comment store and post directory.

Status transitions are lightweight transactions
(``UPDATE ... IF status = ?``), so two moderators racing on one comment
cannot both apply. The reply cascade is a LOGGED batch.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from cassandra.query import BatchStatement, BatchType

from consultancy_cms.comments.models import (
    Comment,
    CommentStatus,
    ModerationLogEntry,
    PostRef,
)
from consultancy_cms.comments.store import CommentStore, PostDirectory
from consultancy_cms.core.exceptions import NotFoundError


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


class CassandraCommentStore(CommentStore):
    """Comment store over the tables in ``COMMENTS_TABLES_CQL``."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        ks = self.keyspace

        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {ks}.comments
            (comment_id, post_id, parent_id, author_id, content, status,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._get_comment = self.session.prepare(f"""
            SELECT * FROM {ks}.comments WHERE comment_id = ?
        """)
        self._set_status = self.session.prepare(f"""
            UPDATE {ks}.comments
            SET status = ?, updated_at = ?
            WHERE comment_id = ?
            IF status = ?
        """)
        self._get_reply_ids = self.session.prepare(f"""
            SELECT comment_id FROM {ks}.comments WHERE parent_id = ?
        """)
        self._delete_comment = self.session.prepare(f"""
            DELETE FROM {ks}.comments WHERE comment_id = ?
        """)
        self._list_comments = self.session.prepare(f"""
            SELECT * FROM {ks}.comments
        """)
        self._list_comments_by_post = self.session.prepare(f"""
            SELECT * FROM {ks}.comments WHERE post_id = ?
        """)
        self._insert_log = self.session.prepare(f"""
            INSERT INTO {ks}.comment_moderation_log
            (comment_id, created_at, entry_id, actor_id, action, from_status,
             to_status, reason)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._list_log = self.session.prepare(f"""
            SELECT * FROM {ks}.comment_moderation_log WHERE comment_id = ?
        """)

    async def insert_comment(self, comment: Comment) -> None:
        await self.session.aexecute(
            self._insert_comment,
            [
                comment.id,
                comment.post_id,
                comment.parent_id,
                comment.author_id,
                comment.content,
                comment.status.value,
                comment.created_at,
                comment.updated_at,
            ],
        )

    async def get_comment(self, comment_id: UUID) -> Comment | None:
        row = (await self.session.aexecute(self._get_comment, [comment_id])).one()
        return Comment.from_row(row) if row else None

    async def compare_and_set_status(
        self,
        comment_id: UUID,
        expected: CommentStatus,
        new: CommentStatus,
        updated_at: datetime,
    ) -> bool:
        result = await self.session.aexecute(
            self._set_status, [new.value, updated_at, comment_id, expected.value]
        )
        return result.was_applied

    async def delete_comment_cascade(self, comment_id: UUID) -> list[UUID]:
        if await self.get_comment(comment_id) is None:
            raise NotFoundError("Comment not found")

        rows = await self.session.aexecute(self._get_reply_ids, [comment_id])
        deleted = [comment_id, *(row.comment_id for row in rows)]

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        for deleted_id in deleted:
            batch.add(self._delete_comment, [deleted_id])
        await self.session.aexecute(batch)

        logger.info(
            "comment_deleted_with_cascade",
            comment_id=str(comment_id),
            replies=len(deleted) - 1,
        )
        return deleted

    async def find_comments(self, post_id: UUID | None = None) -> list[Comment]:
        if post_id is None:
            rows = await self.session.aexecute(self._list_comments)
        else:
            rows = await self.session.aexecute(self._list_comments_by_post, [post_id])
        return [Comment.from_row(row) for row in rows]

    async def append_moderation_log(self, entry: ModerationLogEntry) -> None:
        await self.session.aexecute(
            self._insert_log,
            [
                entry.comment_id,
                entry.created_at,
                entry.entry_id,
                entry.actor_id,
                entry.action.value,
                entry.from_status.value if entry.from_status else None,
                entry.to_status.value if entry.to_status else None,
                entry.reason,
            ],
        )

    async def list_moderation_log(self, comment_id: UUID) -> list[ModerationLogEntry]:
        rows = await self.session.aexecute(self._list_log, [comment_id])
        return [ModerationLogEntry.from_row(row) for row in rows]


class CassandraPostDirectory(PostDirectory):
    """Post lookup over the ``posts`` table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self._get_post = session.prepare(f"""
            SELECT id, title, slug FROM {keyspace}.posts WHERE id = ?
        """)

    async def get_post(self, post_id: UUID) -> PostRef | None:
        row = (await self.session.aexecute(self._get_post, [post_id])).one()
        return PostRef.from_row(row) if row else None
