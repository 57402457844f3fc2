"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from core.config import config

# Create Celery app
celery_app = Celery(
    "studio_schedule",
    broker=config.REDIS_URL,
    backend=config.REDIS_URL,
)

# Configure Celery
celery_app.conf.update(
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

# Auto-discover tasks from app.tasks module
celery_app.autodiscover_tasks(["app.tasks"], related_name="schedule_tasks")

# Configure periodic tasks (Celery Beat)
celery_app.conf.beat_schedule = {
    # Keep the rolling horizon of recurring classes materialized (daily at 3 AM UTC)
    "expand-recurring-templates": {
        "task": "expand_recurring_templates",
        "schedule": crontab(hour=3, minute=0),
    },
}


if __name__ == "__main__":
    celery_app.start()
