"""Celery tasks for PitchEdge.

This module configures Celery and registers all periodic tasks.
"""

from celery import Celery

from pitchedge.config import get_settings

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "pitchedge",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "pitchedge.tasks.engine",
        "pitchedge.tasks.results",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task behavior
    task_track_started=True,
    task_time_limit=1800,  # 30 minute hard limit
    task_soft_time_limit=1680,
    # Result expiration
    result_expires=3600,  # 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Prediction engine - every 3 hours
    "run-engine-cycle": {
        "task": "pitchedge.tasks.engine.run_engine_cycle",
        "schedule": 10800.0,
        "options": {"expires": 10500},
    },
    # Result sync - every 30 minutes
    "sync-results": {
        "task": "pitchedge.tasks.results.sync_results_task",
        "schedule": 1800.0,
        "options": {"expires": 1740},
    },
}
