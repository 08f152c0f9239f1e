from __future__ import annotations

from functools import lru_cache

from gatherhub.core.config import settings
from gatherhub.mailer.base import EmailSender
from gatherhub.mailer.console import ConsoleEmailSender
from gatherhub.mailer.sendgrid import SendGridEmailSender


def create_email_sender(backend: str | None = None) -> EmailSender:
    selected_backend = (backend or settings.email_backend).strip().lower()
    if selected_backend == "sendgrid":
        return SendGridEmailSender(
            settings.sendgrid_api_key,
            settings.email_from,
            host=settings.sendgrid_api_host,
        )
    if selected_backend == "console":
        return ConsoleEmailSender()
    raise ValueError(f"unsupported email backend: {selected_backend}")


@lru_cache(maxsize=1)
def get_email_sender() -> EmailSender:
    return create_email_sender()
