"""Comment API endpoints.

Public routes:
- POST /v1/comments: submit a comment or reply (signed-in users)
- GET /v1/comments: approved comments only

Admin routes (behind ``AdminSession``):
- GET /v1/admin/comments: every status, filterable
- PATCH /v1/admin/comments/{comment_id}: change status
- DELETE /v1/admin/comments/{comment_id}: hard delete with replies
- GET /v1/admin/comments/{comment_id}/log: moderation history
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from consultancy_cms.auth.dependencies import AdminSession, CurrentSession
from consultancy_cms.core.exceptions import AppError, to_http_exception

from .dependencies import ModerationServiceDep
from .models import CommentFilter, CommentStatus
from .schemas import (
    CommentListResponse,
    CommentResponse,
    DeleteCommentResponse,
    ModerationLogResponse,
    SubmitCommentRequest,
    UpdateCommentStatusRequest,
)


router = APIRouter(prefix="/v1/comments", tags=["comments"])
admin_router = APIRouter(prefix="/v1/admin/comments", tags=["comments-admin"])


@router.post(
    "",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit comment",
)
async def submit_comment(
    data: SubmitCommentRequest,
    service: ModerationServiceDep,
    session: CurrentSession,
) -> CommentResponse:
    """Submit a comment. It stays hidden until a moderator approves it."""
    try:
        comment = await service.submit(
            content=data.content,
            post_id=data.post_id,
            author_id=UUID(session.user.id),
            parent_id=data.parent_id,
        )
    except AppError as e:
        raise to_http_exception(e) from e
    return CommentResponse.from_comment(comment)


@router.get("", response_model=CommentListResponse, summary="List approved comments")
async def list_public_comments(
    service: ModerationServiceDep,
    post_id: UUID | None = None,
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> CommentListResponse:
    """Approved comments, newest first, with approved replies nested."""
    criteria = CommentFilter(search=search, post_id=post_id, page=page, limit=limit)
    try:
        result = await service.list_by_filter(criteria, public=True)
    except AppError as e:
        raise to_http_exception(e) from e
    return CommentListResponse.from_page(result)


# ==============================================================================
# Admin
# ==============================================================================


@admin_router.get("", response_model=CommentListResponse, summary="List comments")
async def list_admin_comments(
    service: ModerationServiceDep,
    _session: AdminSession,
    status_filter: CommentStatus | None = Query(None, alias="status"),
    post_id: UUID | None = None,
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> CommentListResponse:
    """Every comment unless ``status`` narrows the listing."""
    criteria = CommentFilter(
        status=status_filter, search=search, post_id=post_id, page=page, limit=limit
    )
    try:
        result = await service.list_by_filter(criteria, public=False)
    except AppError as e:
        raise to_http_exception(e) from e
    return CommentListResponse.from_page(result)


@admin_router.patch(
    "/{comment_id}", response_model=CommentResponse, summary="Set comment status"
)
async def set_comment_status(
    comment_id: UUID,
    data: UpdateCommentStatusRequest,
    service: ModerationServiceDep,
    session: AdminSession,
) -> CommentResponse:
    """Move a comment to any status. Repeating the current status is a no-op."""
    try:
        comment = await service.set_status(
            comment_id,
            data.status,
            actor_id=UUID(session.user.id),
            reason=data.reason,
        )
    except AppError as e:
        raise to_http_exception(e) from e
    return CommentResponse.from_comment(comment)


@admin_router.delete(
    "/{comment_id}", response_model=DeleteCommentResponse, summary="Delete comment"
)
async def delete_comment(
    comment_id: UUID,
    service: ModerationServiceDep,
    session: AdminSession,
) -> DeleteCommentResponse:
    """Permanently delete a comment together with its replies."""
    try:
        deleted = await service.delete(comment_id, actor_id=UUID(session.user.id))
    except AppError as e:
        raise to_http_exception(e) from e
    return DeleteCommentResponse(deleted_ids=deleted)


@admin_router.get(
    "/{comment_id}/log",
    response_model=ModerationLogResponse,
    summary="Moderation history",
)
async def get_moderation_log(
    comment_id: UUID,
    service: ModerationServiceDep,
    _session: AdminSession,
) -> ModerationLogResponse:
    entries = await service.get_moderation_log(comment_id)
    return ModerationLogResponse.from_entries(entries)
