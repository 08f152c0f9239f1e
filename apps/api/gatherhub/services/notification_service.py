from __future__ import annotations

import uuid
from collections.abc import Iterable

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gatherhub.models import Notification, User
from gatherhub.models.notification import NotificationType
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import NotFoundError

logger = structlog.get_logger()


def notify(
    db: Session,
    recipients: Iterable[str],
    *,
    title: str,
    message: str,
    type: NotificationType,
    event_id: uuid.UUID | None = None,
) -> int:
    """Write in-app notifications after the primary change has been committed.

    Write failures are logged and reported as zero notifications.
    """
    user_ids = list(dict.fromkeys(recipients))
    if not user_ids:
        return 0

    try:
        db.add_all(
            Notification(
                user_id=user_id,
                event_id=event_id,
                title=title,
                message=message,
                type=type,
            )
            for user_id in user_ids
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "notification_write_failed",
            type=type.value,
            event_id=str(event_id) if event_id else None,
            recipients=len(user_ids),
            error=str(exc),
        )
        return 0

    logger.info("notifications_created", type=type.value, recipients=len(user_ids))
    return len(user_ids)


def list_notifications(
    db: Session, user: User, *, unread_only: bool = False, limit: int = 50
) -> tuple[list[Notification], int]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))

    unread = db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
    )
    return list(db.scalars(stmt).all()), int(unread or 0)


def mark_read(db: Session, user: User, notification_id: uuid.UUID) -> Notification:
    notification = db.get(Notification, notification_id)
    # Other users' notifications look exactly like missing ones
    if notification is None or notification.user_id != user.id:
        raise NotFoundError(ErrorCode.NOTIFICATION_NOT_FOUND.value, "notification not found")

    if not notification.is_read:
        notification.is_read = True
        db.add(notification)
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user: User) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    db.commit()
    return result.rowcount or 0
