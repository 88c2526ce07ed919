"""Comment store contract and its in-memory implementation."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from consultancy_cms.comments.models import (
    Comment,
    CommentStatus,
    ModerationLogEntry,
    PostRef,
)
from consultancy_cms.core.exceptions import ConflictError, NotFoundError


class CommentStore(ABC):
    """Interface for comment persistence backends."""

    @abstractmethod
    async def insert_comment(self, comment: Comment) -> None:
        """Persist a new comment."""

    @abstractmethod
    async def get_comment(self, comment_id: UUID) -> Comment | None:
        """Return the comment with ``comment_id``."""

    @abstractmethod
    async def compare_and_set_status(
        self,
        comment_id: UUID,
        expected: CommentStatus,
        new: CommentStatus,
        updated_at: datetime,
    ) -> bool:
        """Set ``new`` only if the stored status is still ``expected``.

        Returns False when another writer got there first or the comment
        no longer exists.
        """

    @abstractmethod
    async def delete_comment_cascade(self, comment_id: UUID) -> list[UUID]:
        """Delete a comment and its replies; return every deleted id.

        Raises NotFoundError when the comment does not exist.
        """

    @abstractmethod
    async def find_comments(self, post_id: UUID | None = None) -> list[Comment]:
        """Return all comments, optionally restricted to one post."""

    @abstractmethod
    async def append_moderation_log(self, entry: ModerationLogEntry) -> None:
        """Append an entry to a comment's moderation log."""

    @abstractmethod
    async def list_moderation_log(self, comment_id: UUID) -> list[ModerationLogEntry]:
        """Return a comment's log entries, oldest first."""


class PostDirectory(ABC):
    """Read-only lookup of the posts comments belong to."""

    @abstractmethod
    async def get_post(self, post_id: UUID) -> PostRef | None:
        """Return the post or None."""


class InMemoryCommentStore(CommentStore):
    """Process-local comment store for tests and local development."""

    def __init__(self, comments: Iterable[Comment] = ()) -> None:
        self._lock = asyncio.Lock()
        self._comments: dict[UUID, Comment] = {c.id: replace(c) for c in comments}
        self._log: dict[UUID, list[ModerationLogEntry]] = {}

    async def insert_comment(self, comment: Comment) -> None:
        async with self._lock:
            if comment.id in self._comments:
                raise ConflictError("Comment already exists")
            self._comments[comment.id] = replace(comment)

    async def get_comment(self, comment_id: UUID) -> Comment | None:
        comment = self._comments.get(comment_id)
        return replace(comment) if comment else None

    async def compare_and_set_status(
        self,
        comment_id: UUID,
        expected: CommentStatus,
        new: CommentStatus,
        updated_at: datetime,
    ) -> bool:
        async with self._lock:
            comment = self._comments.get(comment_id)
            if comment is None or comment.status != expected:
                return False
            comment.status = new
            comment.updated_at = updated_at
            return True

    async def delete_comment_cascade(self, comment_id: UUID) -> list[UUID]:
        async with self._lock:
            if comment_id not in self._comments:
                raise NotFoundError("Comment not found")
            replies = [
                c.id for c in self._comments.values() if c.parent_id == comment_id
            ]
            deleted = [comment_id, *replies]
            for deleted_id in deleted:
                del self._comments[deleted_id]
            return deleted

    async def find_comments(self, post_id: UUID | None = None) -> list[Comment]:
        return [
            replace(c)
            for c in self._comments.values()
            if post_id is None or c.post_id == post_id
        ]

    async def append_moderation_log(self, entry: ModerationLogEntry) -> None:
        async with self._lock:
            self._log.setdefault(entry.comment_id, []).append(replace(entry))

    async def list_moderation_log(self, comment_id: UUID) -> list[ModerationLogEntry]:
        return [replace(e) for e in self._log.get(comment_id, [])]


class InMemoryPostDirectory(PostDirectory):
    def __init__(self, posts: Iterable[PostRef] = ()) -> None:
        self._posts: dict[UUID, PostRef] = {post.id: post for post in posts}

    def add(self, post: PostRef) -> None:
        self._posts[post.id] = post

    async def get_post(self, post_id: UUID) -> PostRef | None:
        return self._posts.get(post_id)
