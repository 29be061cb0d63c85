"""
Celery Application Configuration

The API process does not fan out alert cycles; merchants poll check-due.
Celery only carries the batch entry point, either sent by an operator or,
when ALERT_BATCH_CRON_HOUR is set, once a day from beat.
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "stockpulse",
    broker=settings.redis_url,
    backend=settings.redis_url,
)


def build_beat_schedule(batch_cron_hour: int | None) -> dict:
    if batch_cron_hour is None:
        return {}
    return {
        "low-stock-batch-daily": {
            "task": "workers.alerting.process_all_enabled",
            "schedule": crontab(hour=batch_cron_hour, minute=0),
            "options": {"queue": "alerts"},
        },
    }


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Delivery dates follow the process-local clock, same as the API
    enable_utc=False,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.alerting.*": {"queue": "alerts"},
    },
    beat_schedule=build_beat_schedule(settings.alert_batch_cron_hour),
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["workers"], related_name="alerting")
