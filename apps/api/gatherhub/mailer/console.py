from __future__ import annotations

import structlog

from gatherhub.mailer.base import EmailMessage, EmailSender

logger = structlog.get_logger()


class ConsoleEmailSender(EmailSender):
    """Logs outgoing mail instead of delivering it. Keeps the last messages for inspection."""

    def __init__(self) -> None:
        self.outbox: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.outbox.append(message)
        logger.info(
            "email_logged",
            to=message.to,
            subject=message.subject,
            attachments=[a.filename for a in message.attachments],
        )
