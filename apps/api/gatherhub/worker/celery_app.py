from celery import Celery

from gatherhub.core.config import settings

celery_app = Celery(
    "gatherhub",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["gatherhub.worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
    task_acks_late=True,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.beat_schedule = {
    "send-event-reminders": {
        "task": "send_event_reminders",
        "schedule": 3600.0,
    },
    "complete-past-events": {
        "task": "complete_past_events",
        "schedule": 3600.0,
    },
}
