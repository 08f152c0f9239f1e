from __future__ import annotations

import base64
from urllib.error import URLError

import pytest
from sendgrid import SendGridAPIClient

from gatherhub.mailer.base import Attachment, EmailMessage
from gatherhub.mailer.sendgrid import SendGridEmailSender
from gatherhub.services.exceptions import ExternalServiceError

QR = b"\x89PNG fake"


def _message() -> EmailMessage:
    return EmailMessage(
        to="ada@example.com",
        subject="Your ticket",
        html='<p>See you there</p><img src="cid:ticket-qr">',
        text="See you there",
        attachments=[Attachment("ticket.png", QR, "image/png", content_id="ticket-qr")],
    )


def test_sendgrid_mail_carries_inline_qr():
    sender = SendGridEmailSender("SG.key", "noreply@gatherhub.online")
    body = sender.build_mail(_message()).get()

    assert body["from"]["email"] == "noreply@gatherhub.online"
    assert body["personalizations"][0]["to"] == [{"email": "ada@example.com"}]
    assert body["subject"] == "Your ticket"
    assert [c["type"] for c in body["content"]] == ["text/plain", "text/html"]

    attachment = body["attachments"][0]
    assert base64.b64decode(attachment["content"]) == QR
    assert attachment["filename"] == "ticket.png"
    assert attachment["type"] == "image/png"
    assert attachment["disposition"] == "inline"
    assert attachment["content_id"] == "ticket-qr"


def test_sendgrid_send_posts_through_client(monkeypatch):
    sent = []
    monkeypatch.setattr(SendGridAPIClient, "send", lambda self, mail: sent.append(mail))

    SendGridEmailSender("SG.key", "noreply@gatherhub.online").send(_message())
    assert len(sent) == 1
    assert sent[0].get()["subject"] == "Your ticket"


def test_sendgrid_failures_become_service_errors(monkeypatch):
    def unreachable(self, mail):
        raise URLError("connection refused")

    monkeypatch.setattr(SendGridAPIClient, "send", unreachable)
    with pytest.raises(ExternalServiceError) as excinfo:
        SendGridEmailSender("SG.key", "noreply@gatherhub.online").send(_message())
    assert excinfo.value.code == "EMAIL_DELIVERY_FAILED"


def test_sendgrid_requires_api_key():
    with pytest.raises(ExternalServiceError):
        SendGridEmailSender(None, "noreply@gatherhub.online").send(_message())
