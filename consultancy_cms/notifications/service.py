"""Notification dispatcher.

Renders an email template and hands it to a ``MailTransport`` in a background
task, so the request that triggered it never waits for mail I/O and never
sees a delivery failure. Failed sends are retried with a linear backoff and
then logged as ``notification_dispatch_failed``.
"""

import asyncio
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any, TypeVar

from consultancy_cms.core.exceptions import TransportFailureError
from consultancy_cms.core.logging import get_logger
from consultancy_cms.email.schemas import RenderedEmail
from consultancy_cms.email.templates import (
    render_approval_notification,
    render_new_comment_admin_alert,
    render_rejection_notification,
    render_reply_notification,
)
from consultancy_cms.email.transport import MailTransport


logger = get_logger(__name__)

T = TypeVar("T")


class NotificationTemplate(str, Enum):
    """Email templates the dispatcher can send."""

    NEW_COMMENT_ADMIN_ALERT = "new-comment-admin-alert"
    REPLY_NOTIFICATION = "reply-notification"
    APPROVAL_NOTIFICATION = "approval-notification"
    REJECTION_NOTIFICATION = "rejection-notification"


RENDERERS: dict[NotificationTemplate, Callable[..., RenderedEmail]] = {
    NotificationTemplate.NEW_COMMENT_ADMIN_ALERT: render_new_comment_admin_alert,
    NotificationTemplate.REPLY_NOTIFICATION: render_reply_notification,
    NotificationTemplate.APPROVAL_NOTIFICATION: render_approval_notification,
    NotificationTemplate.REJECTION_NOTIFICATION: render_rejection_notification,
}

MODERATION_PATH = "/admin/blog/comments"


class NotificationDispatcher:
    """Fire-and-forget email delivery with bounded retries."""

    def __init__(
        self,
        transport: MailTransport,
        *,
        site_url: str = "http://localhost:3000",
        max_retries: int = 2,
        retry_backoff_seconds: float = 1.0,
    ):
        self.transport = transport
        self.site_url = site_url.rstrip("/")
        self.max_retries = max(0, max_retries)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._tasks: set[asyncio.Task[Any]] = set()
        self._sent = 0
        self._failed = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def stats(self) -> dict[str, int]:
        return {"sent": self._sent, "failed": self._failed, "pending": self.pending}

    # ==========================================================================
    # URLs
    # ==========================================================================

    def post_url(self, slug: str) -> str:
        return f"{self.site_url}/blog/{slug}"

    def comment_url(self, slug: str, comment_id: Any) -> str:
        return f"{self.post_url(slug)}#comment-{comment_id}"

    @property
    def moderation_url(self) -> str:
        return f"{self.site_url}{MODERATION_PATH}"

    # ==========================================================================
    # Dispatch
    # ==========================================================================

    def dispatch(
        self, template: NotificationTemplate, to: str, **context: Any
    ) -> asyncio.Task[bool]:
        """Schedule delivery of ``template`` to ``to`` and return immediately.

        Must be called from a running event loop.
        """
        template = NotificationTemplate(template)
        return self.spawn(
            self._deliver(template, to, context), name=f"notification:{template.value}"
        )

    def spawn(self, coro: Coroutine[Any, Any, T], name: str) -> asyncio.Task[T]:
        """Run ``coro`` in the background, tracked by ``drain``."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(
        self, template: NotificationTemplate, to: str, context: dict[str, Any]
    ) -> bool:
        try:
            rendered = RENDERERS[template](**context)
        except Exception as e:
            self._failed += 1
            logger.exception(
                "notification_render_failed", template=template.value, error=str(e)
            )
            return False

        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self._send_once(to, rendered)
            except Exception as e:
                if attempt < attempts:
                    logger.info(
                        "notification_retry_scheduled",
                        template=template.value,
                        attempt=attempt,
                        error=str(e),
                    )
                    await asyncio.sleep(self.retry_backoff_seconds * attempt)
                    continue
                self._failed += 1
                logger.warning(
                    "notification_dispatch_failed",
                    template=template.value,
                    to=to,
                    attempts=attempt,
                    error=str(e),
                )
                return False

            self._sent += 1
            logger.info(
                "notification_sent",
                template=template.value,
                to=to,
                attempts=attempt,
            )
            return True
        return False

    async def _send_once(self, to: str, rendered: RenderedEmail) -> None:
        response = await self.transport.send(
            to, rendered.subject, rendered.html, rendered.text
        )
        if not response.success:
            raise TransportFailureError(response.error or "Transport reported failure")

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ==========================================================================
    # Comment notifications
    # ==========================================================================

    def notify_admins_new_comment(
        self,
        recipients: list[str],
        *,
        post_title: str,
        post_slug: str,
        author_name: str,
        content: str,
    ) -> int:
        """Alert each administrator about a new comment. Returns the count."""
        for email in recipients:
            self.dispatch(
                NotificationTemplate.NEW_COMMENT_ADMIN_ALERT,
                email,
                post_title=post_title,
                post_url=self.post_url(post_slug),
                author_name=author_name,
                content=content,
                moderation_url=self.moderation_url,
            )
        return len(recipients)

    def notify_reply(
        self,
        to: str,
        *,
        post_title: str,
        post_slug: str,
        replier_name: str,
        content: str,
        reply_content: str,
        reply_id: Any,
    ) -> None:
        self.dispatch(
            NotificationTemplate.REPLY_NOTIFICATION,
            to,
            post_title=post_title,
            post_url=self.post_url(post_slug),
            author_name=replier_name,
            content=content,
            reply_content=reply_content,
            comment_url=self.comment_url(post_slug, reply_id),
        )

    def notify_approved(
        self,
        to: str,
        *,
        author_name: str,
        post_title: str,
        post_slug: str,
        content: str,
    ) -> None:
        self.dispatch(
            NotificationTemplate.APPROVAL_NOTIFICATION,
            to,
            author_name=author_name,
            post_title=post_title,
            post_url=self.post_url(post_slug),
            content=content,
        )

    def notify_rejected(
        self, to: str, *, post_title: str, reason: str | None = None
    ) -> None:
        self.dispatch(
            NotificationTemplate.REJECTION_NOTIFICATION,
            to,
            post_title=post_title,
            reason=reason,
        )
