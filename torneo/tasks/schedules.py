"""Celery Beat schedule configuration.

Tasks:
- Every `expiration_sweep_interval_seconds`: expire lapsed tickets
"""

from torneo.config import get_settings

settings = get_settings()


# Celery Beat schedule
CELERY_BEAT_SCHEDULE = {
    # Move lapsed reservations and unused paid tickets to EXPIRED
    "expire-tickets": {
        "task": "torneo.tasks.expiration.expire_tickets_task",
        "schedule": float(settings.expiration_sweep_interval_seconds),
        "options": {"queue": "maintenance"},
    },
}


# Task routing
CELERY_TASK_ROUTES = {
    "torneo.tasks.expiration.*": {"queue": "maintenance"},
}
