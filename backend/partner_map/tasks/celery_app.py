"""Celery application configuration."""

from celery import Celery

from partner_map.config import get_settings

settings = get_settings()

celery_app = Celery(
    "partner_map",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "partner_map.tasks.partner_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Europe/Helsinki",
    task_track_started=True,
    # Imports are network-bound (1 geocode request per second at most)
    task_time_limit=3 * 60 * 60,
    task_soft_time_limit=3 * 60 * 60 - 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
