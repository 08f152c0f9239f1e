import uuid

from celery import Task
from celery.utils.log import get_task_logger
from kombu.exceptions import OperationalError
from sqlalchemy import select
from sqlalchemy.orm import Session

from gatherhub.db import SessionLocal
from gatherhub.identity.factory import get_identity_provider
from gatherhub.mailer.factory import get_email_sender
from gatherhub.mailer.templates import event_cancellation_email, ticket_confirmation_email
from gatherhub.models import Event, Registration, Ticket
from gatherhub.models.registration import RegistrationStatus
from gatherhub.services import maintenance_service, user_service
from gatherhub.services.exceptions import ExternalServiceError
from gatherhub.services.ticket_service import render_qr_png
from gatherhub.worker.celery_app import celery_app

logger = get_task_logger(__name__)


def enqueue(task: Task, *args) -> None:
    """Queue a task without letting a broker outage fail the caller."""
    try:
        task.delay(*args)
    except OperationalError as exc:
        logger.error("enqueue failed task=%s args=%s error=%s", task.name, args, exc)


@celery_app.task(name="send_ticket_confirmation_email")
def send_ticket_confirmation_email(ticket_id: str) -> dict:
    db: Session = SessionLocal()
    try:
        ticket = db.get(Ticket, uuid.UUID(ticket_id))
        if ticket is None:
            logger.warning("send_ticket_confirmation_email missing ticket_id=%s", ticket_id)
            return {"ticket_id": ticket_id, "sent": False}

        registration = ticket.registration
        user = registration.user
        event = registration.event
        if not user.email:
            logger.warning("send_ticket_confirmation_email no email user_id=%s", user.id)
            return {"ticket_id": ticket_id, "sent": False}

        message = ticket_confirmation_email(
            to=user.email,
            attendee_name=user.name,
            event_name=event.name,
            event_start=event.start_date,
            event_location=event.location,
            ticket_number=ticket.ticket_number,
            ticket_type=registration.ticket_type.value,
            qr_png=render_qr_png(ticket.qr_code),
        )
        get_email_sender().send(message)

        logger.info("send_ticket_confirmation_email sent ticket_id=%s", ticket_id)
        return {"ticket_id": ticket_id, "sent": True}
    finally:
        db.close()


@celery_app.task(name="send_event_cancellation_emails")
def send_event_cancellation_emails(event_id: str, registration_ids: list[str] | None = None) -> dict:
    db: Session = SessionLocal()
    try:
        event = db.get(Event, uuid.UUID(event_id))
        if event is None:
            logger.warning("send_event_cancellation_emails missing event_id=%s", event_id)
            return {"event_id": event_id, "sent": 0, "failed": 0}

        stmt = select(Registration).where(Registration.event_id == event.id)
        if registration_ids is not None:
            stmt = stmt.where(Registration.id.in_([uuid.UUID(r) for r in registration_ids]))
        else:
            stmt = stmt.where(
                Registration.status.in_([RegistrationStatus.CANCELLED, RegistrationStatus.REFUNDED])
            )

        sender = get_email_sender()
        sent = failed = 0
        for registration in db.scalars(stmt).unique().all():
            user = registration.user
            if not user.email:
                continue
            message = event_cancellation_email(
                to=user.email,
                attendee_name=user.name,
                event_name=event.name,
                event_start=event.start_date,
                refunded=registration.status == RegistrationStatus.REFUNDED,
            )
            try:
                sender.send(message)
                sent += 1
            except ExternalServiceError as exc:
                failed += 1
                logger.error(
                    "cancellation email failed registration_id=%s error=%s", registration.id, exc
                )

        logger.info(
            "send_event_cancellation_emails event_id=%s sent=%s failed=%s", event_id, sent, failed
        )
        return {"event_id": event_id, "sent": sent, "failed": failed}
    finally:
        db.close()


@celery_app.task(name="send_event_reminders")
def send_event_reminders() -> dict:
    db: Session = SessionLocal()
    try:
        return {"sent": maintenance_service.send_event_reminders(db)}
    finally:
        db.close()


@celery_app.task(name="complete_past_events")
def complete_past_events() -> dict:
    db: Session = SessionLocal()
    try:
        return {"completed": maintenance_service.complete_past_events(db)}
    finally:
        db.close()


@celery_app.task(name="sync_identity_users")
def sync_identity_users(page_size: int = 100) -> dict:
    db: Session = SessionLocal()
    try:
        return user_service.sync_all_identity_users(db, get_identity_provider(), page_size=page_size)
    finally:
        db.close()
