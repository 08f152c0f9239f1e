from __future__ import annotations

from datetime import datetime
from html import escape

from gatherhub.core.time import as_utc
from gatherhub.mailer.base import Attachment, EmailMessage

QR_CONTENT_ID = "ticket-qr"


def _when(value: datetime) -> str:
    return as_utc(value).strftime("%A, %B %d, %Y at %H:%M UTC")


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{escape(title)}</title></head>
<body style="font-family: Arial, sans-serif; background-color: #f5f5f5; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; padding: 30px; border-radius: 10px;">
    <h1 style="color: #111827;">{escape(title)}</h1>
    {body}
    <p style="color: #6b7280; font-size: 12px;">GatherHub</p>
  </div>
</body>
</html>"""


def ticket_confirmation_email(
    *,
    to: str,
    attendee_name: str,
    event_name: str,
    event_start: datetime,
    event_location: str,
    ticket_number: str,
    ticket_type: str,
    qr_png: bytes,
) -> EmailMessage:
    subject = f"Your ticket for {event_name}"
    body = f"""
    <p>Hi {escape(attendee_name)},</p>
    <p>You're registered for <strong>{escape(event_name)}</strong>.</p>
    <ul>
      <li>When: {escape(_when(event_start))}</li>
      <li>Where: {escape(event_location)}</li>
      <li>Ticket: {escape(ticket_type.upper())} #{escape(ticket_number)}</li>
    </ul>
    <p>Show this QR code at the entrance:</p>
    <p><img src="cid:{QR_CONTENT_ID}" alt="Ticket QR code" width="220" height="220"></p>
    """
    text = (
        f"Hi {attendee_name},\n\n"
        f"You're registered for {event_name}.\n"
        f"When: {_when(event_start)}\n"
        f"Where: {event_location}\n"
        f"Ticket: {ticket_type.upper()} #{ticket_number}\n"
    )
    return EmailMessage(
        to=to,
        subject=subject,
        html=_layout("Registration confirmed", body),
        text=text,
        attachments=[
            Attachment(
                filename=f"ticket-{ticket_number}.png",
                content=qr_png,
                content_type="image/png",
                content_id=QR_CONTENT_ID,
            )
        ],
    )


def event_cancellation_email(
    *, to: str, attendee_name: str, event_name: str, event_start: datetime, refunded: bool
) -> EmailMessage:
    refund_line = (
        "Your payment has been refunded to the original payment method."
        if refunded
        else "No payment was taken for this registration."
    )
    body = f"""
    <p>Hi {escape(attendee_name)},</p>
    <p><strong>{escape(event_name)}</strong>, scheduled for {escape(_when(event_start))},
    has been cancelled by the organizer.</p>
    <p>{escape(refund_line)}</p>
    """
    text = (
        f"Hi {attendee_name},\n\n"
        f"{event_name}, scheduled for {_when(event_start)}, has been cancelled by the organizer.\n"
        f"{refund_line}\n"
    )
    return EmailMessage(
        to=to,
        subject=f"Cancelled: {event_name}",
        html=_layout("Event cancelled", body),
        text=text,
    )
