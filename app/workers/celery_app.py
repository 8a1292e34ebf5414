"""
Celery application configuration.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings

# Create Celery app
celery_app = Celery(
    "payments",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.workers.reconcile",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Poll providers for payments stuck in INITIATED / PENDING
    "reconcile-stale-payments": {
        "task": "app.workers.reconcile.reconcile_pending_payments",
        "schedule": crontab(minute="*/10"),
    },
}
