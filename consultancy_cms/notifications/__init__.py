"""Background email notifications."""

from .service import NotificationDispatcher, NotificationTemplate


__all__ = ["NotificationDispatcher", "NotificationTemplate"]
