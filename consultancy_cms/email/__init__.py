"""Outbound email: templates and transports."""

from .schemas import RenderedEmail, SendEmailRequest, SendEmailResponse
from .service import GmailTransport
from .transport import LoggingTransport, MailTransport


__all__ = [
    "GmailTransport",
    "LoggingTransport",
    "MailTransport",
    "RenderedEmail",
    "SendEmailRequest",
    "SendEmailResponse",
]
