from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str
    # Set to reference the attachment from HTML as cid:<content_id>
    content_id: str | None = None


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str | None = None
    attachments: list[Attachment] = field(default_factory=list)


class EmailSender(ABC):
    @abstractmethod
    def send(self, message: EmailMessage) -> None:
        """Deliver the message or raise ExternalServiceError."""
