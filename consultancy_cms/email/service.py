"""Gmail API mail transport using a Service Account.

Uses domain-wide delegation to send emails on behalf of a Google Workspace user.
The service account must have domain-wide delegation enabled in Google Admin Console.

Required Google Admin Console setup:
1. Go to Security > Access and data control > API controls > Domain-wide delegation
2. Add the service account client_id with scope: https://www.googleapis.com/auth/gmail.send
"""

import asyncio
import base64
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import TYPE_CHECKING, Any

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from consultancy_cms.core.logging import get_logger

from .schemas import EmailRecipient, SendEmailRequest, SendEmailResponse


if TYPE_CHECKING:
    from googleapiclient._apis.gmail.v1 import GmailResource


logger = get_logger(__name__)

GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]


class GmailTransport:
    """Send notification emails through the Gmail API.

    Implements the ``MailTransport`` contract: ``send`` never raises, every
    failure comes back as ``SendEmailResponse(success=False)``.
    """

    def __init__(
        self,
        credentials_path: str,
        sender_address: str,
        sender_name: str = "Consultancy CMS",
    ):
        self.credentials_path = credentials_path
        self.sender_address = sender_address
        self.sender_name = sender_name
        self._service: GmailResource | None = None

        if not Path(credentials_path).exists():
            logger.warning(
                "email_credentials_not_found",
                path=credentials_path,
                message="Gmail API will not be available",
            )

    def _get_service(self) -> "GmailResource":
        """Build the Gmail API client on first use.

        Raises:
            FileNotFoundError: If the credentials file doesn't exist.
        """
        if self._service is not None:
            return self._service

        credentials_file = Path(self.credentials_path)
        if not credentials_file.exists():
            msg = f"Credentials file not found: {self.credentials_path}"
            raise FileNotFoundError(msg)

        credentials = service_account.Credentials.from_service_account_file(
            str(credentials_file),
            scopes=GMAIL_SCOPES,
        )
        self._service = build(
            "gmail",
            "v1",
            credentials=credentials.with_subject(self.sender_address),
            cache_discovery=False,
        )
        logger.info("gmail_service_initialized", sender=self.sender_address)
        return self._service

    def _format_address(self, recipient: EmailRecipient) -> str:
        if recipient.name:
            return f"{recipient.name} <{recipient.email}>"
        return recipient.email

    def _create_message(self, request: SendEmailRequest) -> dict[str, str]:
        """Build the base64url ``raw`` payload the Gmail API expects."""
        message = MIMEMultipart("alternative")
        message["From"] = f"{self.sender_name} <{self.sender_address}>"
        message["To"] = ", ".join(self._format_address(r) for r in request.to)
        message["Subject"] = request.subject
        if request.reply_to:
            message["Reply-To"] = request.reply_to

        # Plain text first, HTML last (clients prefer the last part)
        if request.body_text:
            message.attach(MIMEText(request.body_text, "plain", "utf-8"))
        message.attach(MIMEText(request.body_html, "html", "utf-8"))

        return {"raw": base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")}

    def _execute_send(self, body: dict[str, str]) -> dict[str, Any]:
        service = self._get_service()
        return service.users().messages().send(userId="me", body=body).execute()

    async def send_email(self, request: SendEmailRequest) -> SendEmailResponse:
        """Send an email via Gmail API.

        The blocking HTTP call runs in a worker thread.
        """
        recipients = [r.email for r in request.to]
        try:
            result = await asyncio.to_thread(
                self._execute_send, self._create_message(request)
            )
        except HttpError as e:
            logger.exception(
                "email_send_failed",
                error=str(e),
                to=recipients,
                subject=request.subject[:50],
            )
            return SendEmailResponse(success=False, error=f"Gmail API error: {e}")
        except FileNotFoundError as e:
            logger.error("email_credentials_missing", error=str(e))
            return SendEmailResponse(
                success=False,
                error="Email service not configured: credentials file missing",
            )
        except Exception as e:
            logger.exception("email_send_unexpected_error", error=str(e))
            return SendEmailResponse(success=False, error=f"Unexpected error: {e!s}")

        logger.info(
            "email_sent",
            message_id=result.get("id"),
            thread_id=result.get("threadId"),
            to=recipients,
            subject=request.subject[:50],
        )
        return SendEmailResponse(
            success=True,
            message_id=result.get("id"),
            thread_id=result.get("threadId"),
        )

    async def send(
        self, to: str, subject: str, html: str, text: str
    ) -> SendEmailResponse:
        request = SendEmailRequest(
            to=[EmailRecipient(email=to)],
            subject=subject,
            body_html=html,
            body_text=text,
        )
        return await self.send_email(request)
