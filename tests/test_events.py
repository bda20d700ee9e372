"""Domain event and publisher tests."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from structlog.testing import capture_logs

from torneo.events import (
    DomainEvent,
    DomainEventType,
    InMemoryEventPublisher,
    RedisStreamEventPublisher,
)
from torneo.utils.errors import StorageError

STAMP = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_event(event_type=DomainEventType.TICKET_PAID, **data) -> DomainEvent:
    return DomainEvent(
        event_type=event_type,
        aggregate_id="ticket-1",
        status="paid",
        version=2,
        timestamp=STAMP,
        data=data,
    )


class TestDomainEvent:
    def test_to_dict(self):
        event = make_event(user_id="user-1")
        document = event.to_dict()
        assert document["event_type"] == "TICKET_PAID"
        assert document["timestamp"] == "2026-03-01T12:00:00+00:00"
        assert document["version"] == 2
        assert document["data"] == {"user_id": "user-1"}

    def test_to_json_serializes_decimals(self):
        payload = json.loads(make_event(price=Decimal("20.00")).to_json())
        assert payload["data"]["price"] == "20.00"

    def test_event_ids_are_unique(self):
        assert make_event().event_id != make_event().event_id


class TestInMemoryEventPublisher:
    @pytest.mark.asyncio
    async def test_records_in_order(self):
        publisher = InMemoryEventPublisher()
        await publisher.publish(make_event(DomainEventType.TICKET_RESERVED))
        await publisher.publish(make_event(DomainEventType.TICKET_PAID))

        assert [e.event_type for e in publisher.events] == [
            DomainEventType.TICKET_RESERVED,
            DomainEventType.TICKET_PAID,
        ]
        assert len(publisher.of_type(DomainEventType.TICKET_PAID)) == 1

    @pytest.mark.asyncio
    async def test_handlers_by_type(self):
        publisher = InMemoryEventPublisher()
        received = []

        async def handler(event):
            received.append(event.event_type)

        publisher.subscribe({DomainEventType.TICKET_PAID}, handler)
        await publisher.publish(make_event(DomainEventType.TICKET_RESERVED))
        await publisher.publish(make_event(DomainEventType.TICKET_PAID))

        assert received == [DomainEventType.TICKET_PAID]

    @pytest.mark.asyncio
    async def test_handler_failure_is_logged_not_raised(self):
        """A broken subscriber must not undo an already committed transition."""
        publisher = InMemoryEventPublisher()

        async def broken(event):
            raise RuntimeError("boom")

        publisher.subscribe({DomainEventType.TICKET_PAID}, broken)

        with capture_logs() as logs:
            await publisher.publish(make_event())

        assert len(publisher.events) == 1
        [entry] = [e for e in logs if e["event"] == "event_handler_failed"]
        assert entry["log_level"] == "error"
        assert entry["error"] == "boom"


class TestRedisStreamEventPublisher:
    @pytest.mark.asyncio
    async def test_xadd_flat_fields(self):
        client = AsyncMock()
        publisher = RedisStreamEventPublisher(client, stream_key="events", max_len=100)

        await publisher.publish(make_event(user_id="user-1"))

        client.xadd.assert_awaited_once()
        args, kwargs = client.xadd.call_args
        stream, fields = args
        assert stream == "events"
        assert fields["event_type"] == "TICKET_PAID"
        assert fields["version"] == "2"
        assert json.loads(fields["data"]) == {"user_id": "user-1"}
        assert kwargs == {"maxlen": 100, "approximate": True}

    @pytest.mark.asyncio
    async def test_redis_failure_becomes_storage_error(self):
        client = AsyncMock()
        client.xadd.side_effect = redis.ConnectionError("refused")
        publisher = RedisStreamEventPublisher(client)

        with pytest.raises(StorageError) as exc_info:
            await publisher.publish(make_event())

        assert exc_info.value.details["committed"] is True
        assert isinstance(exc_info.value.__cause__, redis.ConnectionError)
