from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown

from app.config import get_settings
from app.utils.async_celery import cleanup_event_loop
from app.utils.logging_setup import setup_logging

settings = get_settings()

celery_app = Celery(
    "swush_sync_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks.sync_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # A scheduled run must never overlap with the next one
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

if settings.swush_sync_enabled:
    celery_app.conf.beat_schedule = {
        "sync-due-games": {
            "task": "app.tasks.sync_tasks.sync_due_games",
            "schedule": settings.sync_schedule_minutes * 60.0,
        },
    }
else:
    celery_app.conf.beat_schedule = {}


@worker_process_init.connect
def _init_worker(**kwargs):
    setup_logging(settings.log_level)


@worker_process_shutdown.connect
def _shutdown_worker(**kwargs):
    cleanup_event_loop()
