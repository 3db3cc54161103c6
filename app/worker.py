"""Celery worker configuration.

This module sets up Celery for background payment verification when the
API runs with VERIFICATION_BACKEND=celery.
"""

from celery import Celery

from app.config import settings

# Create Celery app
celery_app = Celery(
    "deden_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Default verification polls for ~30s plus per-poll timeouts
    task_time_limit=300,
    task_soft_time_limit=240,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,
)


if __name__ == "__main__":
    celery_app.start()
