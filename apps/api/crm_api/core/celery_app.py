from celery import Celery

from crm_api.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "crm_api",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["crm_api.workers.reminder_scan"],
)
celery_app.conf.beat_schedule = {
    "scan-due-reminders": {
        "task": "crm_api.reminders.scan",
        "schedule": float(settings.reminder_scan_interval_seconds),
    },
}
celery_app.conf.timezone = "UTC"
