"""Celery application configuration.

Features:
- Redis as broker and result backend
- Task routing by queue
- Scheduled tasks via Celery Beat
"""

from celery import Celery
from celery.signals import setup_logging

from torneo.config import get_settings
from torneo.logging_config import configure_logging
from torneo.tasks.schedules import CELERY_BEAT_SCHEDULE, CELERY_TASK_ROUTES

settings = get_settings()
_redis_base = settings.redis_url.rsplit("/", 1)[0]

celery_app = Celery(
    "torneo_tasks",
    broker=f"{_redis_base}/1",  # DB 1 for broker
    backend=f"{_redis_base}/2",  # DB 2 for results
    include=[
        "torneo.tasks.expiration",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    timezone="UTC",
    enable_utc=True,

    task_routes=CELERY_TASK_ROUTES,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    result_expires=3600,

    beat_schedule=CELERY_BEAT_SCHEDULE,

    task_default_retry_delay=30,
    task_max_retries=3,
)


@setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Route worker and task logs through the structlog formatter."""
    configure_logging(log_level=settings.log_level, app_env=settings.app_env)
