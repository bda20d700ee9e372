"""
Domain events emitted after every committed state transition.

Payload is the aggregate identifier plus its new status and version; delivery
and ordering past the publisher belong to the messaging collaborator.
"""

import json
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set
from uuid import uuid4

import redis.asyncio as redis

from torneo.logging_config import get_logger
from torneo.utils.errors import StorageError

logger = get_logger(__name__)


class DomainEventType(Enum):
    """Event types published by the tournament and ticket services."""

    # Tournament lifecycle
    TOURNAMENT_CREATED = auto()
    TOURNAMENT_PUBLISHED = auto()
    TOURNAMENT_STARTED = auto()
    TOURNAMENT_FINISHED = auto()
    TOURNAMENT_CANCELLED = auto()
    TOURNAMENT_DELETED = auto()

    # Participants
    PARTICIPANT_ADMITTED = auto()
    PARTICIPANT_CONFIRMED = auto()
    PARTICIPANT_CANCELLED = auto()
    PARTICIPANT_DISQUALIFIED = auto()

    # Tickets
    TICKET_RESERVED = auto()
    TICKET_PAID = auto()
    TICKET_USED = auto()
    TICKET_EXPIRED = auto()
    TICKET_CANCELLED = auto()


@dataclass(frozen=True)
class DomainEvent:
    """Immutable record of one committed transition."""

    event_type: DomainEventType
    aggregate_id: str
    status: str
    version: int = 0
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Event-specific data (user_id, participant_id, refund_required, ...)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.name,
            "aggregate_id": self.aggregate_id,
            "status": self.status,
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventPublisher(Protocol):
    async def publish(self, event: DomainEvent) -> None:
        ...


class InMemoryEventPublisher:
    """Publisher that keeps every event in order and fans out to local handlers.

    Handler failures are logged and do not affect the publishing operation.
    """

    def __init__(self) -> None:
        self.events: List[DomainEvent] = []
        self._handlers_by_type: Dict[DomainEventType, List[EventHandler]] = (
            defaultdict(list)
        )

    def subscribe(self, event_types: Set[DomainEventType], handler: EventHandler) -> None:
        for event_type in event_types:
            self._handlers_by_type[event_type].append(handler)

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)
        for handler in self._handlers_by_type.get(event.event_type, []):
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_type=event.event_type.name,
                    aggregate_id=event.aggregate_id,
                    error=str(e),
                )

    def of_type(self, event_type: DomainEventType) -> List[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class RedisStreamEventPublisher:
    """Publisher appending events to a capped Redis Stream (XADD)."""

    def __init__(
        self,
        redis_client: redis.Redis,
        stream_key: str = "torneo:events",
        max_len: Optional[int] = 10000,
    ):
        self.redis = redis_client
        self.stream_key = stream_key
        self.max_len = max_len

    async def publish(self, event: DomainEvent) -> None:
        # Flat structure: stream fields must be strings
        data = {
            "event_id": event.event_id,
            "event_type": event.event_type.name,
            "aggregate_id": event.aggregate_id,
            "status": event.status,
            "version": str(event.version),
            "timestamp": event.timestamp.isoformat(),
            "data": json.dumps(event.data, default=str),
        }

        try:
            await self.redis.xadd(
                self.stream_key,
                data,
                maxlen=self.max_len,
                approximate=True,
            )
        except redis.RedisError as e:
            raise StorageError(
                "Failed to publish domain event",
                details={
                    "eventType": event.event_type.name,
                    "aggregateId": event.aggregate_id,
                    "committed": True,
                },
            ) from e
