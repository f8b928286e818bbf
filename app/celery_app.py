"""Celery application instance shared across the backend.

Start a worker and the scheduler with:
    celery -A app.celery_app worker -Q reminder -l info --concurrency=2
    celery -A app.celery_app beat -l info
"""

from celery import Celery
from celery.schedules import crontab

from config import settings

celery_app = Celery("expiry_reminders", broker=settings.REDIS_URL, backend=settings.REDIS_URL)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True
celery_app.conf.timezone = settings.DEFAULT_TIMEZONE

celery_app.conf.task_routes = {
    "app.workers.expiry.run_expiry_check": {"queue": "reminder"},
}

# Beat schedule: one expiry pass every hour; overlapping passes are harmless
celery_app.conf.beat_schedule = {
    "run-expiry-check": {
        "task": "app.workers.expiry.run_expiry_check",
        "schedule": crontab(minute=settings.EXPIRY_CHECK_MINUTE),
    }
}

# --- Ensure tasks are registered ---
import app.workers.expiry  # noqa: E402,F401
