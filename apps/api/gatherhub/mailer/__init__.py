from gatherhub.mailer.base import Attachment, EmailMessage, EmailSender
from gatherhub.mailer.console import ConsoleEmailSender
from gatherhub.mailer.sendgrid import SendGridEmailSender

__all__ = [
    "Attachment",
    "EmailMessage",
    "EmailSender",
    "ConsoleEmailSender",
    "SendGridEmailSender",
]
