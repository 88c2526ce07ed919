"""Blog comment submission and moderation."""

from .models import Comment, CommentFilter, CommentStatus
from .service import ModerationService


__all__ = ["Comment", "CommentFilter", "CommentStatus", "ModerationService"]
