"""Expiration sweep.

Moves RESERVED and paid-but-unused tickets whose deadline has passed to
EXPIRED. Each ticket is reloaded and saved under the version check, so a
sweep racing a payment or a redemption on the same ticket resolves to one
winner; the loser observes the new state on its retry.
"""

from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Dict, Optional

from torneo.clock import Clock, SystemClock
from torneo.events import DomainEvent, DomainEventType, EventPublisher
from torneo.logging_config import aggregate_context, get_logger
from torneo.repositories.base import TicketRepository
from torneo.ticket.models import Ticket
from torneo.utils.errors import ConcurrentModificationError
from torneo.utils.retry import retry_on_conflict

logger = get_logger(__name__)


@dataclass
class SweepResult:
    scanned: int = 0
    expired: int = 0
    skipped: int = 0
    conflicts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanned": self.scanned,
            "expired": self.expired,
            "skipped": self.skipped,
            "conflicts": self.conflicts,
        }


class ExpirationSweeper:
    """Batch job driven by an external scheduler.

    Usage:
        sweeper = ExpirationSweeper(ticket_repo, publisher, batch_size=500)
        result = await sweeper.sweep()
    """

    def __init__(
        self,
        tickets: TicketRepository,
        publisher: EventPublisher,
        clock: Optional[Clock] = None,
        batch_size: int = 500,
        conflict_retry_attempts: int = 3,
    ) -> None:
        self.tickets = tickets
        self.publisher = publisher
        self.clock = clock or SystemClock()
        self.batch_size = batch_size
        self.conflict_retry_attempts = conflict_retry_attempts

    async def _expire_one(self, ticket_id: str, now: datetime) -> Optional[Ticket]:
        ticket = await self.tickets.get(ticket_id)
        # Paid, used or cancelled since the scan
        if ticket is None or not ticket.is_expirable(now):
            return None
        return await self.tickets.save(ticket.expire(now))

    async def sweep(self) -> SweepResult:
        """Expire everything due at one instant. Running it again is a no-op."""
        now = self.clock.now()
        result = SweepResult()

        while True:
            candidates = await self.tickets.list_expirable(now, self.batch_size)
            progressed = 0
            for candidate in candidates:
                result.scanned += 1
                with aggregate_context(
                    tournament_id=candidate.tournament_id,
                    ticket_id=candidate.ticket_id,
                ):
                    try:
                        expired = await retry_on_conflict(
                            partial(self._expire_one, candidate.ticket_id, now),
                            self.conflict_retry_attempts,
                        )
                    except ConcurrentModificationError:
                        result.conflicts += 1
                        logger.warning("ticket_expiration_conflict")
                        continue

                if expired is None:
                    result.skipped += 1
                    continue

                result.expired += 1
                progressed += 1
                await self.publisher.publish(
                    DomainEvent(
                        event_type=DomainEventType.TICKET_EXPIRED,
                        aggregate_id=expired.ticket_id,
                        status=expired.status.value,
                        version=expired.version,
                        timestamp=now,
                        data={
                            "tournament_id": expired.tournament_id,
                            "user_id": expired.user_id,
                            "ticket_code": expired.ticket_code,
                            "expiration_date": expired.expiration_date.isoformat(),
                        },
                    )
                )
                logger.info(
                    "ticket_expired",
                    ticket_id=expired.ticket_id,
                    version=expired.version,
                )

            # A short batch means the backlog is drained; a batch with no
            # progress would return the same candidates again.
            if len(candidates) < self.batch_size or progressed == 0:
                break

        logger.info("expiration_sweep_complete", **result.to_dict())
        return result
