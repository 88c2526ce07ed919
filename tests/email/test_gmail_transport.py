"""Tests for the Gmail mail transport."""

import base64
from email import message_from_bytes
from email.message import Message
from unittest.mock import MagicMock, Mock, patch

import pytest
from googleapiclient.errors import HttpError

from consultancy_cms.email import GmailTransport, LoggingTransport, MailTransport
from consultancy_cms.email.schemas import (
    EmailRecipient,
    SendEmailRequest,
    SendEmailResponse,
)


@pytest.fixture
def transport() -> GmailTransport:
    return GmailTransport(
        credentials_path="/fake/path.json",
        sender_address="cms@example.com",
        sender_name="Consultancy CMS",
    )


def _decode(raw_body: dict[str, str]) -> Message:
    return message_from_bytes(base64.urlsafe_b64decode(raw_body["raw"]))


class TestMailTransportContract:
    def test_both_transports_satisfy_protocol(self, transport) -> None:
        assert isinstance(transport, MailTransport)
        assert isinstance(LoggingTransport(), MailTransport)


class TestCreateMessage:
    def test_headers_and_parts(self, transport) -> None:
        request = SendEmailRequest(
            to=[EmailRecipient(email="rita@example.com", name="Rita")],
            subject="Hello",
            body_html="<p>Hi</p>",
            body_text="Hi",
            reply_to="support@example.com",
        )

        message = _decode(transport._create_message(request))

        assert message["From"] == "Consultancy CMS <cms@example.com>"
        assert message["To"] == "Rita <rita@example.com>"
        assert message["Reply-To"] == "support@example.com"
        content_types = [part.get_content_type() for part in message.walk()]
        assert content_types == ["multipart/alternative", "text/plain", "text/html"]


class TestSend:
    @pytest.mark.asyncio
    async def test_success(self, transport) -> None:
        with patch.object(
            transport, "_execute_send", return_value={"id": "m1", "threadId": "t1"}
        ) as execute:
            response = await transport.send("rita@example.com", "Hi", "<p>x</p>", "x")

        assert response == SendEmailResponse(
            success=True, message_id="m1", thread_id="t1"
        )
        execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_credentials_is_reported(self, transport) -> None:
        response = await transport.send("rita@example.com", "Hi", "<p>x</p>", "x")

        assert response.success is False
        assert "credentials file missing" in response.error

    @pytest.mark.asyncio
    async def test_api_error_is_reported(self, transport) -> None:
        error = HttpError(Mock(status=500, reason="Backend Error"), b"{}")
        with patch.object(transport, "_execute_send", side_effect=error):
            response = await transport.send("rita@example.com", "Hi", "<p>x</p>", "x")

        assert response.success is False
        assert response.error.startswith("Gmail API error")

    @pytest.mark.asyncio
    async def test_existing_service_is_reused(self, transport) -> None:
        service = MagicMock()
        service.users().messages().send().execute.return_value = {"id": "m2"}
        transport._service = service

        first = await transport.send("a@example.com", "Hi", "<p>x</p>", "x")
        second = await transport.send("b@example.com", "Hi", "<p>x</p>", "x")

        assert first.message_id == "m2"
        assert second.success is True


class TestLoggingTransport:
    @pytest.mark.asyncio
    async def test_records_messages(self) -> None:
        transport = LoggingTransport()

        response = await transport.send("rita@example.com", "Hi", "<p>x</p>", "x")

        assert response.success is True
        assert response.message_id.startswith("local-")
        assert transport.sent[0]["to"] == "rita@example.com"
        assert transport.sent[0]["id"] == response.message_id
