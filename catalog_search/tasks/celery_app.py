"""
Celery Application Configuration
"""

import os
from celery import Celery
from celery.schedules import crontab

# Get configuration from environment
# Use REDIS_URL if set, otherwise construct from CELERY_BROKER_URL or default
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)

# Create Celery app
app = Celery(
    "catalog_search",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "catalog_search.tasks.profiles",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Configure periodic tasks with Celery Beat
app.conf.beat_schedule = {
    # Rebuild user profiles from the order export (every 6 hours)
    "rebuild-user-profiles": {
        "task": "tasks.rebuild_user_profiles",
        "schedule": crontab(minute=0, hour="*/6"),
    },
}

if __name__ == "__main__":
    app.start()
