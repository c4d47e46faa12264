from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from matchengine.config import settings

app = Celery(
    "matchengine",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "matchengine.tasks.notification_tasks.*": {"queue": "notifications"},
        "matchengine.tasks.request_tasks.*": {"queue": "requests"},
    },
    beat_schedule={
        "close-stale-requests": {
            "task": "matchengine.tasks.request_tasks.close_stale_requests",
            "schedule": crontab(minute=0),  # every hour
        },
    },
)

app.autodiscover_tasks(
    [
        "matchengine.tasks.notification_tasks",
        "matchengine.tasks.request_tasks",
    ]
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    from matchengine.common.logging import setup_logging

    setup_logging()
