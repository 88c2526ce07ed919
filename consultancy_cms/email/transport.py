"""Mail transport contract.

A transport delivers one rendered message to one address and reports the
outcome in a ``SendEmailResponse``. Callers choose the implementation and
pass it in; nothing here inspects the environment.
"""

from typing import Protocol, runtime_checkable
from uuid import uuid4

from consultancy_cms.core.logging import get_logger

from .schemas import SendEmailResponse


logger = get_logger(__name__)


@runtime_checkable
class MailTransport(Protocol):
    """Anything that can send an email."""

    async def send(
        self, to: str, subject: str, html: str, text: str
    ) -> SendEmailResponse: ...


class LoggingTransport:
    """Transport for development and tests: logs and records messages."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    async def send(
        self, to: str, subject: str, html: str, text: str
    ) -> SendEmailResponse:
        message_id = f"local-{uuid4()}"
        self.sent.append(
            {"to": to, "subject": subject, "html": html, "text": text, "id": message_id}
        )
        logger.info("email_logged", to=to, subject=subject[:50], message_id=message_id)
        return SendEmailResponse(success=True, message_id=message_id)
