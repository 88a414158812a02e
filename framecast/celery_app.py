"""Celery application configuration."""

from celery import Celery

from framecast.config import get_settings

settings = get_settings()

celery_app = Celery(
    "framecast",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["framecast.tasks.render_task"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.render_celery_timeout_s,
    task_soft_time_limit=max(settings.render_celery_timeout_s - 300, 60),
    worker_prefetch_multiplier=1,  # Render one partition at a time
    task_acks_late=True,  # Acknowledge after the chunk is written
    task_reject_on_worker_lost=True,  # Requeue if worker dies
)
