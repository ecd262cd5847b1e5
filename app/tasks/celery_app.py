"""
Celery application configuration.

Defines the Celery app with Redis broker, task autodiscovery,
and the periodic beat schedule for transfer status synchronisation.
"""

from celery import Celery

from app.config import settings

celery_app = Celery(
    "paymentswithoutborders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# Auto-discover tasks in the tasks package
celery_app.autodiscover_tasks(["app.tasks"])

# Beat schedule — periodic tasks
celery_app.conf.beat_schedule = {
    "sync-pending-transfers": {
        "task": "app.tasks.transfer_tasks.sync_pending_transfers",
        "schedule": settings.TRANSFER_SYNC_INTERVAL_SECONDS,
    },
}
