from celery import Celery
from celery.schedules import crontab

from core.config import settings

celery_app = Celery(
    "paaniyo",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.email_tasks", "tasks.maintenance_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,
    task_soft_time_limit=25 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    task_always_eager=settings.TESTING,
    task_eager_propagates=False,
    beat_schedule={
        "hourly-cleanup": {
            "task": "tasks.maintenance_tasks.cleanup_task",
            "schedule": crontab(minute=0),
        },
    },
)
