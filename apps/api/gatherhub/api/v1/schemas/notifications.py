from __future__ import annotations

from uuid import UUID

from gatherhub.api.v1.schemas.common import SchemaBase, UTCDateTime
from gatherhub.models.notification import NotificationType


class NotificationOut(SchemaBase):
    id: UUID
    event_id: UUID | None = None
    title: str
    message: str
    type: NotificationType
    is_read: bool
    created_at: UTCDateTime


class NotificationListOut(SchemaBase):
    items: list[NotificationOut]
    unread: int


class MarkedReadOut(SchemaBase):
    updated: int
