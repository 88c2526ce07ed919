"""Database models for blog comment moderation.

Cassandra table definitions for:
- comments: one row per comment, looked up by id, secondary indexes on
  post_id and parent_id for listing and reply cascades
- comment_moderation_log: append-only trail of status changes and deletions
- posts: read-only view of the blog posts comments attach to

Threading is one level deep: a reply's parent is always a top-level comment
on the same post.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from consultancy_cms.auth.models import ensure_utc_aware


class CommentStatus(str, Enum):
    """Moderation status of a comment."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SPAM = "SPAM"


class ModerationAction(str, Enum):
    """Actions recorded in the moderation log."""

    STATUS_CHANGED = "status_changed"
    DELETED = "deleted"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Status transitions use UPDATE ... IF status = ? (compare-and-set)
COMMENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments (
    comment_id UUID PRIMARY KEY,
    post_id UUID,
    parent_id UUID,
    author_id UUID,
    content TEXT,
    status TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

COMMENT_POST_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_post_idx
ON {keyspace}.comments (post_id)
"""

COMMENT_PARENT_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_parent_idx
ON {keyspace}.comments (parent_id)
"""

MODERATION_LOG_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_moderation_log (
    comment_id UUID,
    created_at TIMESTAMP,
    entry_id UUID,
    actor_id UUID,
    action TEXT,
    from_status TEXT,
    to_status TEXT,
    reason TEXT,
    PRIMARY KEY ((comment_id), created_at, entry_id)
) WITH CLUSTERING ORDER BY (created_at ASC, entry_id ASC)
"""

POST_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.posts (
    id UUID PRIMARY KEY,
    title TEXT,
    slug TEXT,
    published BOOLEAN
)
"""

COMMENTS_TABLES_CQL = [
    COMMENT_TABLE_CQL,
    COMMENT_POST_INDEX_CQL,
    COMMENT_PARENT_INDEX_CQL,
    MODERATION_LOG_TABLE_CQL,
    POST_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class Comment:
    """Comment entity. ``content`` is stored already sanitized."""

    id: UUID
    post_id: UUID
    content: str
    author_id: UUID | None = None
    parent_id: UUID | None = None
    status: CommentStatus = CommentStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

    @classmethod
    def from_row(cls, row: Any) -> "Comment":
        """Create Comment from Cassandra row."""
        return cls(
            id=row.comment_id,
            post_id=row.post_id,
            content=row.content,
            author_id=row.author_id,
            parent_id=row.parent_id,
            status=CommentStatus(row.status),
            created_at=ensure_utc_aware(row.created_at),
            updated_at=ensure_utc_aware(row.updated_at or row.created_at),
        )


@dataclass
class PostRef:
    """The parts of a blog post that comments and emails need."""

    id: UUID
    title: str
    slug: str

    @classmethod
    def from_row(cls, row: Any) -> "PostRef":
        return cls(id=row.id, title=row.title, slug=row.slug)


@dataclass
class ModerationLogEntry:
    """One applied moderation action."""

    entry_id: UUID
    comment_id: UUID
    action: ModerationAction
    actor_id: UUID | None
    from_status: CommentStatus | None
    to_status: CommentStatus | None
    reason: str | None
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "ModerationLogEntry":
        return cls(
            entry_id=row.entry_id,
            comment_id=row.comment_id,
            action=ModerationAction(row.action),
            actor_id=row.actor_id,
            from_status=CommentStatus(row.from_status) if row.from_status else None,
            to_status=CommentStatus(row.to_status) if row.to_status else None,
            reason=row.reason,
            created_at=ensure_utc_aware(row.created_at),
        )


# ==============================================================================
# Listing
# ==============================================================================


@dataclass
class CommentFilter:
    """Listing criteria. ``status=None`` means every status."""

    status: CommentStatus | None = None
    search: str | None = None
    post_id: UUID | None = None
    page: int = 1
    limit: int = 20


@dataclass
class CommentThread:
    """A listed comment with the matching replies nested under it."""

    comment: Comment
    replies: list[Comment] = field(default_factory=list)


@dataclass
class CommentPage:
    items: list[CommentThread]
    total: int
    page: int
    limit: int
    total_pages: int


# ==============================================================================
# Factories
# ==============================================================================


def create_comment(
    post_id: UUID,
    content: str,
    author_id: UUID | None = None,
    parent_id: UUID | None = None,
    status: CommentStatus = CommentStatus.PENDING,
) -> Comment:
    """Factory function to create a new comment."""
    now = datetime.now(UTC)
    return Comment(
        id=uuid4(),
        post_id=post_id,
        content=content,
        author_id=author_id,
        parent_id=parent_id,
        status=status,
        created_at=now,
        updated_at=now,
    )


def create_moderation_entry(
    comment_id: UUID,
    action: ModerationAction,
    actor_id: UUID | None = None,
    from_status: CommentStatus | None = None,
    to_status: CommentStatus | None = None,
    reason: str | None = None,
) -> ModerationLogEntry:
    """Factory for a moderation log entry stamped with the current time."""
    return ModerationLogEntry(
        entry_id=uuid4(),
        comment_id=comment_id,
        action=action,
        actor_id=actor_id,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        created_at=datetime.now(UTC),
    )
