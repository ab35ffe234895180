"""Celery application configuration."""
from celery import Celery

from orgmeter_upload.config import get_settings

settings = get_settings()

celery_app = Celery(
    "orgmeter_upload",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["orgmeter_upload.tasks.upload_tasks"],
)

celery_app.conf.update(
    task_track_started=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Re-deliver jobs whose worker died mid-run
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
)
