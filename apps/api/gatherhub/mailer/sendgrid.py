from __future__ import annotations

import base64
from urllib.error import URLError

import structlog
from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Attachment,
    ContentId,
    Disposition,
    FileContent,
    FileName,
    FileType,
    Mail,
)

from gatherhub.mailer.base import EmailMessage, EmailSender
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import ExternalServiceError

logger = structlog.get_logger()


class SendGridEmailSender(EmailSender):
    def __init__(self, api_key: str | None, sender: str, host: str = "https://api.sendgrid.com") -> None:
        self._api_key = api_key
        self._sender = sender
        self._host = host

    def build_mail(self, message: EmailMessage) -> Mail:
        mail = Mail(
            from_email=self._sender,
            to_emails=message.to,
            subject=message.subject,
            plain_text_content=message.text or None,
            html_content=message.html,
        )
        for a in message.attachments:
            mail.add_attachment(
                Attachment(
                    FileContent(base64.b64encode(a.content).decode("ascii")),
                    FileName(a.filename),
                    FileType(a.content_type),
                    Disposition("inline" if a.content_id else "attachment"),
                    ContentId(a.content_id) if a.content_id else None,
                )
            )
        return mail

    def send(self, message: EmailMessage) -> None:
        if not self._api_key:
            raise ExternalServiceError(ErrorCode.EMAIL_DELIVERY_FAILED.value, "sendgrid api key is not configured")

        client = SendGridAPIClient(api_key=self._api_key, host=self._host)
        try:
            client.send(self.build_mail(message))
        except (HTTPError, URLError) as exc:
            logger.error("email_send_failed", to=message.to, subject=message.subject, error=str(exc))
            raise ExternalServiceError(ErrorCode.EMAIL_DELIVERY_FAILED.value, "failed to send email") from exc

        logger.info("email_sent", to=message.to, subject=message.subject)
