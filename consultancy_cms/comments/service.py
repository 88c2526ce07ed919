"""Comment moderation service layer.

Business logic for:
- Submitting comments and one-level replies
- Any-to-any status transitions serialized by compare-and-set
- Hard deletes with reply cascade
- Filtered, paginated listing for public and admin readers
- Moderation audit trail
- Best-effort email notifications after each committed change
"""

import html
import math
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from consultancy_cms.auth.models import User
from consultancy_cms.auth.permissions import Role
from consultancy_cms.auth.store import IdentityStore
from consultancy_cms.config.settings import Settings
from consultancy_cms.core.exceptions import (
    ConflictError,
    InvalidFieldError,
    InvalidReferenceError,
    NotFoundError,
    RateLimitExceededError,
)
from consultancy_cms.core.logging import get_logger

from .models import (
    Comment,
    CommentFilter,
    CommentPage,
    CommentStatus,
    CommentThread,
    ModerationAction,
    ModerationLogEntry,
    PostRef,
    create_comment,
    create_moderation_entry,
)
from .store import CommentStore, PostDirectory


if TYPE_CHECKING:
    from redis.asyncio import Redis

    from consultancy_cms.notifications.service import NotificationDispatcher


logger = get_logger(__name__)

MAX_PAGE_SIZE = 100
ANONYMOUS_NAME = "Anonymous"

# Decides whether a freshly submitted comment skips the moderation queue
AutoApprovePolicy = Callable[[Comment], bool]


# ==============================================================================
# Content Sanitization
# ==============================================================================


# Allowed HTML tags (basic formatting only)
ALLOWED_TAGS = {"b", "i", "em", "strong", "code", "pre"}


def sanitize_content(content: str) -> str:
    """Sanitize comment content to prevent XSS.

    - Escapes HTML entities
    - Allows only safe formatting tags
    - Strips dangerous attributes
    """
    escaped = html.escape(content)

    # Re-enable allowed tags (simple approach)
    for tag in ALLOWED_TAGS:
        escaped = escaped.replace(f"&lt;{tag}&gt;", f"<{tag}>")
        escaped = escaped.replace(f"&lt;/{tag}&gt;", f"</{tag}>")

    return escaped


def plain_text(content: str) -> str:
    """Stored content back to the text the author typed."""
    return html.unescape(content)


def display_name(user: User | None) -> str:
    if user is None:
        return ANONYMOUS_NAME
    return user.name or user.email.split("@", 1)[0]


class ModerationService:
    """Service for comment submission, moderation and listing."""

    def __init__(
        self,
        comments: CommentStore,
        posts: PostDirectory,
        users: IdentityStore,
        settings: Settings,
        notifier: "NotificationDispatcher | None" = None,
        redis: "Redis | None" = None,
        auto_approve: AutoApprovePolicy | None = None,
    ):
        self.comments = comments
        self.posts = posts
        self.users = users
        self.settings = settings
        self.notifier = notifier
        self.redis = redis
        self.auto_approve = auto_approve
        self.admin_emails = settings.normalized_admin_emails

    # ==========================================================================
    # Rate Limiting (Redis-based)
    # ==========================================================================

    async def check_rate_limit(self, author_id: UUID) -> bool:
        """Check if an author has exceeded the submission rate.

        Returns True if within limit, raises RateLimitExceededError otherwise.
        """
        if not self.redis:
            return True

        key_minute = f"comments:rate:{author_id}:minute"
        key_hour = f"comments:rate:{author_id}:hour"

        minute_count = await self.redis.get(key_minute)
        if minute_count and int(minute_count) >= self.settings.comments_per_minute:
            raise RateLimitExceededError(
                "Too many comments per minute. Please wait a moment."
            )

        hour_count = await self.redis.get(key_hour)
        if hour_count and int(hour_count) >= self.settings.comments_per_hour:
            raise RateLimitExceededError("Hourly comment limit reached.")

        return True

    async def increment_rate_limit(self, author_id: UUID) -> None:
        """Increment rate limit counters."""
        if not self.redis:
            return

        key_minute = f"comments:rate:{author_id}:minute"
        key_hour = f"comments:rate:{author_id}:hour"

        pipe = self.redis.pipeline()
        pipe.incr(key_minute)
        pipe.expire(key_minute, 60)
        pipe.incr(key_hour)
        pipe.expire(key_hour, 3600)
        await pipe.execute()

    # ==========================================================================
    # Submit
    # ==========================================================================

    def _validate_content(self, content: str | None) -> str:
        text = (content or "").strip()
        if not text:
            raise InvalidFieldError("content", "Comment content is required")
        if len(text) > self.settings.comment_max_length:
            raise InvalidFieldError(
                "content",
                f"Comment must be at most {self.settings.comment_max_length} "
                "characters",
            )
        return text

    async def _require_post(self, post_id: UUID) -> PostRef:
        post = await self.posts.get_post(post_id)
        if post is None:
            raise NotFoundError("Post not found")
        return post

    async def _resolve_parent(self, parent_id: UUID, post_id: UUID) -> Comment:
        parent = await self.comments.get_comment(parent_id)
        if parent is None:
            raise InvalidReferenceError("parent_id", "Parent comment does not exist")
        if parent.post_id != post_id:
            raise InvalidReferenceError(
                "parent_id", "Parent comment belongs to a different post"
            )
        if parent.parent_id is not None:
            raise InvalidReferenceError(
                "parent_id", "Replies cannot be nested more than one level"
            )
        return parent

    async def submit(
        self,
        content: str,
        post_id: UUID,
        author_id: UUID | None = None,
        parent_id: UUID | None = None,
    ) -> Comment:
        """Create a comment in PENDING, or APPROVED when auto-approved.

        Performs:
        - Content validation and sanitization
        - Post and parent checks (replies are one level deep, same post)
        - Rate limiting when Redis is configured
        - Admin alert and reply notifications after the insert
        """
        text = self._validate_content(content)
        post = await self._require_post(post_id)
        parent = await self._resolve_parent(parent_id, post_id) if parent_id else None

        if author_id is not None:
            await self.check_rate_limit(author_id)

        comment = create_comment(
            post_id=post_id,
            content=sanitize_content(text),
            author_id=author_id,
            parent_id=parent_id,
        )
        if self.auto_approve is not None and self.auto_approve(comment):
            comment.status = CommentStatus.APPROVED

        await self.comments.insert_comment(comment)

        if author_id is not None:
            await self.increment_rate_limit(author_id)

        logger.info(
            "comment_submitted",
            comment_id=str(comment.id),
            post_id=str(post_id),
            parent_id=str(parent_id) if parent_id else None,
            status=comment.status.value,
        )

        try:
            await self._notify_submitted(comment, post, parent)
        except Exception as notif_error:
            logger.warning(
                "notification_processing_failed",
                comment_id=str(comment.id),
                error=str(notif_error),
            )

        return comment

    async def _admin_recipients(self) -> list[str]:
        recipients = set(self.admin_emails)
        for role in (Role.ADMIN, Role.SUPER_ADMIN):
            for user in await self.users.list_users_by_role(role):
                if user.is_active:
                    recipients.add(user.email.lower())
        return sorted(recipients)

    async def _alert_admins(
        self, comment: Comment, post: PostRef, author_name: str
    ) -> None:
        """Resolve administrators and alert them. Runs as a background task."""
        try:
            recipients = await self._admin_recipients()
            self.notifier.notify_admins_new_comment(
                recipients,
                post_title=post.title,
                post_slug=post.slug,
                author_name=author_name,
                content=plain_text(comment.content),
            )
        except Exception as e:
            logger.warning(
                "admin_alert_failed", comment_id=str(comment.id), error=str(e)
            )

    async def _notify_submitted(
        self, comment: Comment, post: PostRef, parent: Comment | None
    ) -> None:
        if self.notifier is None:
            return

        author = None
        if comment.author_id is not None:
            author = await self.users.get_user(comment.author_id)
        author_name = display_name(author)

        if self.settings.comment_notify_admins:
            self.notifier.spawn(
                self._alert_admins(comment, post, author_name),
                name=f"admin-alert:{comment.id}",
            )

        if parent is None or parent.author_id is None:
            return
        if parent.author_id == comment.author_id:
            return
        parent_author = await self.users.get_user(parent.author_id)
        if parent_author is None or not parent_author.email:
            return
        self.notifier.notify_reply(
            parent_author.email,
            post_title=post.title,
            post_slug=post.slug,
            replier_name=author_name,
            content=plain_text(parent.content),
            reply_content=plain_text(comment.content),
            reply_id=comment.id,
        )

    # ==========================================================================
    # Status transitions
    # ==========================================================================

    async def _require_comment(self, comment_id: UUID) -> Comment:
        comment = await self.comments.get_comment(comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        return comment

    async def set_status(
        self,
        comment_id: UUID,
        new_status: CommentStatus,
        actor_id: UUID | None = None,
        reason: str | None = None,
    ) -> Comment:
        """Move a comment to ``new_status``.

        Setting the current status again is a no-op. Concurrent writers are
        detected by compare-and-set; after the configured number of lost
        races the call fails with ConflictError.
        """
        new_status = CommentStatus(new_status)
        attempts = max(1, self.settings.comment_status_update_attempts)

        for _ in range(attempts):
            current = await self._require_comment(comment_id)
            if current.status == new_status:
                logger.debug(
                    "comment_status_unchanged",
                    comment_id=str(comment_id),
                    status=new_status.value,
                )
                return current

            updated_at = datetime.now(UTC)
            applied = await self.comments.compare_and_set_status(
                comment_id, current.status, new_status, updated_at
            )
            if applied:
                break
        else:
            logger.warning(
                "comment_status_conflict",
                comment_id=str(comment_id),
                attempts=attempts,
            )
            raise ConflictError("Comment was modified concurrently, please retry")

        previous = current.status
        current.status = new_status
        current.updated_at = updated_at

        await self.comments.append_moderation_log(
            create_moderation_entry(
                comment_id,
                ModerationAction.STATUS_CHANGED,
                actor_id=actor_id,
                from_status=previous,
                to_status=new_status,
                reason=reason,
            )
        )
        logger.info(
            "comment_status_changed",
            comment_id=str(comment_id),
            from_status=previous.value,
            to_status=new_status.value,
            actor_id=str(actor_id) if actor_id else None,
        )

        try:
            await self._notify_status_changed(current, previous, reason)
        except Exception as notif_error:
            logger.warning(
                "notification_processing_failed",
                comment_id=str(comment_id),
                error=str(notif_error),
            )

        return current

    async def _notify_status_changed(
        self, comment: Comment, previous: CommentStatus, reason: str | None
    ) -> None:
        if self.notifier is None or comment.author_id is None:
            return

        is_approval = comment.status == CommentStatus.APPROVED
        is_rejection = (
            previous == CommentStatus.PENDING
            and comment.status == CommentStatus.REJECTED
            and self.settings.comment_notify_rejections
        )
        if not (is_approval or is_rejection):
            return

        author = await self.users.get_user(comment.author_id)
        if author is None or not author.email:
            return
        post = await self.posts.get_post(comment.post_id)
        if post is None:
            return

        if is_approval:
            self.notifier.notify_approved(
                author.email,
                author_name=display_name(author),
                post_title=post.title,
                post_slug=post.slug,
                content=plain_text(comment.content),
            )
        else:
            self.notifier.notify_rejected(
                author.email, post_title=post.title, reason=reason
            )

    # ==========================================================================
    # Delete
    # ==========================================================================

    async def delete(
        self, comment_id: UUID, actor_id: UUID | None = None
    ) -> list[UUID]:
        """Hard-delete a comment and its replies. Returns the deleted ids."""
        deleted = await self.comments.delete_comment_cascade(comment_id)

        for deleted_id in deleted:
            await self.comments.append_moderation_log(
                create_moderation_entry(
                    deleted_id,
                    ModerationAction.DELETED,
                    actor_id=actor_id,
                    reason="reply cascade" if deleted_id != comment_id else None,
                )
            )

        logger.info(
            "comment_deleted",
            comment_id=str(comment_id),
            deleted_count=len(deleted),
            actor_id=str(actor_id) if actor_id else None,
        )
        return deleted

    async def get_moderation_log(self, comment_id: UUID) -> list[ModerationLogEntry]:
        """Return the moderation history of a comment, oldest first.

        History outlives the comment, so deleted comments still have one.
        """
        return await self.comments.list_moderation_log(comment_id)

    # ==========================================================================
    # Listing
    # ==========================================================================

    async def list_by_filter(
        self, criteria: CommentFilter, public: bool = True
    ) -> CommentPage:
        """Paginated listing.

        Public readers only ever see APPROVED comments. Admin readers see
        every status unless ``criteria.status`` narrows it. Replies that
        match are nested under their parent when the parent matches too,
        otherwise they are listed as entries of their own. Entries are
        newest first, nested replies oldest first.
        """
        if criteria.page < 1:
            raise InvalidFieldError("page", "Page must be 1 or greater")
        if not 1 <= criteria.limit <= MAX_PAGE_SIZE:
            raise InvalidFieldError(
                "limit", f"Limit must be between 1 and {MAX_PAGE_SIZE}"
            )

        status_filter = CommentStatus.APPROVED if public else criteria.status
        needle = (criteria.search or "").strip().casefold()

        matched = [
            c
            for c in await self.comments.find_comments(criteria.post_id)
            if (status_filter is None or c.status == status_filter)
            and (not needle or needle in plain_text(c.content).casefold())
        ]

        threads: dict[UUID, CommentThread] = {
            c.id: CommentThread(c) for c in matched if c.parent_id is None
        }
        entries = list(threads.values())
        for comment in matched:
            if comment.parent_id is None:
                continue
            parent_thread = threads.get(comment.parent_id)
            if parent_thread is not None:
                parent_thread.replies.append(comment)
            else:
                entries.append(CommentThread(comment))

        for thread in entries:
            thread.replies.sort(key=lambda c: c.created_at)
        entries.sort(key=lambda t: t.comment.created_at, reverse=True)

        total = len(entries)
        start = (criteria.page - 1) * criteria.limit
        return CommentPage(
            items=entries[start : start + criteria.limit],
            total=total,
            page=criteria.page,
            limit=criteria.limit,
            total_pages=math.ceil(total / criteria.limit),
        )
