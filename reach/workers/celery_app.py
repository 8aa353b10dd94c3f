"""
Celery Application Configuration
"""
from celery import Celery
from celery.schedules import crontab

from reach.core.config import settings

celery_app = Celery(
    "reach",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["reach.workers.tasks"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Africa/Lagos",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "expire-promotions-every-15-minutes": {
        "task": "reach.workers.tasks.expire_promotions",
        "schedule": 900.0,
    },
    "fail-stale-deposits-every-10-minutes": {
        "task": "reach.workers.tasks.fail_stale_deposits",
        "schedule": 600.0,
    },
    # provider quotas are daily; run off-peak
    "refresh-creator-tiers-daily": {
        "task": "reach.workers.tasks.refresh_creator_tiers",
        "schedule": crontab(hour="2", minute="0"),
    },
}
