import os
from celery import Celery
from celery.schedules import crontab

from .database import SessionLocal
from .services import workflow
from . import notify

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

celery_app.conf.beat_schedule = {
    "daily-digest": {
        "task": "campusconnect.tasks.send_daily_digest",
        "schedule": crontab(hour=7, minute=0),
    },
    "event-reminders": {
        "task": "campusconnect.tasks.send_event_reminders",
        "schedule": crontab(minute=0),
    },
}


@celery_app.task(name="campusconnect.tasks.send_daily_digest")
def send_daily_digest():
    db = SessionLocal()
    try:
        return notify.send_daily_digest(db)
    finally:
        db.close()


@celery_app.task(name="campusconnect.tasks.send_event_reminders")
def send_event_reminders(window_hours: int | None = None):
    db = SessionLocal()
    try:
        if window_hours is None:
            return workflow.send_event_reminders(db)
        return workflow.send_event_reminders(db, window_hours=window_hours)
    finally:
        db.close()
