"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- Task routing to specialized queues
- Serialization and timezone settings
- Beat schedule for the scheduled-automation sweep
"""

from celery import Celery
from celery.schedules import crontab

from app.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "whatsapp_automations",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

# Configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task routing
    task_routes={
        "worker.tasks.scheduled_automations.*": {"queue": "automations"},
        "worker.tasks.triggers.*": {"queue": "triggers"},
        "worker.tasks.*": {"queue": "default"},
    },

    task_default_queue="default",

    # Result expiration (24 hours)
    result_expires=86400,

    # Task execution limits
    task_soft_time_limit=300,
    task_time_limit=600,
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    task_reject_on_worker_lost=True,
    task_acks_on_failure_or_timeout=True,

    beat_schedule={
        "process-scheduled-automations": {
            "task": "worker.tasks.scheduled_automations.process_scheduled_automations",
            "schedule": crontab(minute="*/1"),  # Every minute
            "options": {"queue": "automations"},
        },
    },

    include=[
        "worker.tasks.scheduled_automations",
        "worker.tasks.triggers",
    ],
)
