"""Ticket expiration task.

Runs the expiration sweep against the SQL store and publishes TICKET_EXPIRED
events to the Redis stream. Scheduled by Celery Beat.
"""

import asyncio
import logging

from torneo.logging_config import log_context
from torneo.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="torneo.tasks.expiration.expire_tickets_task",
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(Exception,),
    retry_backoff=True,
)
def expire_tickets_task(self) -> dict:
    """Expire every ticket whose deadline has passed.

    Returns:
        Summary dict (scanned, expired, skipped, conflicts)
    """
    logger.info(
        "Starting ticket expiration sweep (attempt %d)", self.request.retries + 1
    )
    # Sweeper log lines carry the task id
    with log_context(task_id=self.request.id):
        result = asyncio.run(_run_sweep())
    logger.info("Ticket expiration sweep complete: %s", result)
    return result


async def _run_sweep() -> dict:
    import redis.asyncio as redis

    from torneo.config import get_settings
    from torneo.events import RedisStreamEventPublisher
    from torneo.repositories.sql import SqlTicketRepository
    from torneo.ticket.sweeper import ExpirationSweeper
    from torneo.utils.db import create_engine, create_session_factory

    settings = get_settings()
    engine = create_engine(settings)
    redis_client = redis.from_url(settings.redis_url, decode_responses=True)

    try:
        sweeper = ExpirationSweeper(
            tickets=SqlTicketRepository(create_session_factory(engine)),
            publisher=RedisStreamEventPublisher(
                redis_client,
                stream_key=settings.event_stream_key,
                max_len=settings.event_stream_max_len,
            ),
            batch_size=settings.expiration_sweep_batch_size,
            conflict_retry_attempts=settings.conflict_retry_attempts,
        )
        result = await sweeper.sweep()
        return result.to_dict()
    except Exception as e:
        logger.error("Ticket expiration sweep failed: %s", e)
        raise
    finally:
        await redis_client.aclose()
        await engine.dispose()
