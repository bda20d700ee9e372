"""Retry helper for optimistic-concurrency conflicts."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from torneo.utils.errors import ConcurrentModificationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Conflicts clear as soon as the winner commits, so waits stay short.
CONFLICT_WAIT_MULTIPLIER = 0.005
CONFLICT_WAIT_MAX = 0.05


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
) -> T:
    """Run `operation` again while it loses the version check.

    The operation must reload the aggregate on every call. After `attempts`
    tries the last ConcurrentModificationError propagates; any other error
    propagates immediately.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_random_exponential(
            multiplier=CONFLICT_WAIT_MULTIPLIER, max=CONFLICT_WAIT_MAX
        ),
        retry=retry_if_exception_type(ConcurrentModificationError),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    ):
        with attempt:
            result = await operation()
    return result
