"""Pydantic schemas for comment moderation.

Request/Response models for:
- Submitting comments
- Status changes and deletes
- Listing pages with nested replies
- Moderation log entries
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    Comment,
    CommentPage,
    CommentStatus,
    CommentThread,
    ModerationAction,
    ModerationLogEntry,
)


# ==============================================================================
# Request Schemas
# ==============================================================================


class SubmitCommentRequest(BaseModel):
    """Request to submit a comment or a reply.

    Content rules (non-empty after trimming, maximum length) are enforced by
    the service so the error names the ``content`` field.
    """

    post_id: UUID
    content: str
    parent_id: UUID | None = None


class UpdateCommentStatusRequest(BaseModel):
    """Request to move a comment to another status."""

    status: CommentStatus
    reason: str | None = Field(
        None, max_length=1000, description="Moderator note, sent with rejections"
    )


# ==============================================================================
# Response Schemas
# ==============================================================================


class CommentResponse(BaseModel):
    """Single comment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    post_id: UUID
    parent_id: UUID | None
    author_id: UUID | None
    content: str
    status: CommentStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentResponse":
        return cls.model_validate(comment)


class CommentThreadResponse(CommentResponse):
    """Listed comment with its nested replies."""

    replies: list[CommentResponse] = Field(default_factory=list)

    @classmethod
    def from_thread(cls, thread: CommentThread) -> "CommentThreadResponse":
        base = CommentResponse.from_comment(thread.comment)
        return cls(
            **base.model_dump(),
            replies=[CommentResponse.from_comment(r) for r in thread.replies],
        )


class CommentListResponse(BaseModel):
    """Paginated list of comments."""

    items: list[CommentThreadResponse]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def from_page(cls, page: CommentPage) -> "CommentListResponse":
        return cls(
            items=[CommentThreadResponse.from_thread(t) for t in page.items],
            total=page.total,
            page=page.page,
            limit=page.limit,
            total_pages=page.total_pages,
        )


class DeleteCommentResponse(BaseModel):
    deleted_ids: list[UUID]


class ModerationLogEntryResponse(BaseModel):
    """One entry of a comment's moderation history."""

    model_config = ConfigDict(from_attributes=True)

    entry_id: UUID
    comment_id: UUID
    action: ModerationAction
    actor_id: UUID | None
    from_status: CommentStatus | None
    to_status: CommentStatus | None
    reason: str | None
    created_at: datetime


class ModerationLogResponse(BaseModel):
    items: list[ModerationLogEntryResponse]

    @classmethod
    def from_entries(cls, entries: list[ModerationLogEntry]) -> "ModerationLogResponse":
        return cls(
            items=[ModerationLogEntryResponse.model_validate(e) for e in entries]
        )
