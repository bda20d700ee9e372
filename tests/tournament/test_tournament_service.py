"""
Tournament Service Tests.

Operations run against the in-memory repository with a manual clock;
published events and conflict retries are checked explicitly.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from torneo.events import DomainEventType
from torneo.tournament.models import (
    ParticipantStatus,
    TournamentStatus,
    TournamentType,
)
from torneo.tournament.service import TournamentService
from torneo.utils.errors import (
    AggregateNotFoundError,
    ConcurrentModificationError,
    InsufficientParticipantsError,
    InvalidStateError,
    InvalidTransitionError,
    RegistrationWindowClosedError,
    StorageError,
)


async def create_ready(service, base_time, **overrides):
    fields = {
        "name": "Spring Cup",
        "organizer_id": "organizer-1",
        "max_participants": 4,
        "category_id": "category-fps",
        "game_id": "game-1",
        "registration_start": base_time - timedelta(days=1),
        "registration_end": base_time + timedelta(days=1),
        "start_date": base_time + timedelta(days=2),
        "end_date": base_time + timedelta(days=3),
    }
    fields.update(overrides)
    return await service.create_tournament(**fields)


class TestCreateAndLoad:
    @pytest.mark.asyncio
    async def test_create_stores_draft(self, tournament_service, publisher, base_time):
        tournament = await create_ready(tournament_service, base_time)

        assert tournament.status is TournamentStatus.DRAFT
        assert tournament.version == 1
        assert tournament.created_at == base_time
        assert tournament.commission_rate == Decimal("0.0500")

        [event] = publisher.of_type(DomainEventType.TOURNAMENT_CREATED)
        assert event.aggregate_id == tournament.tournament_id
        assert event.status == "draft"
        assert event.data["organizer_id"] == "organizer-1"

    @pytest.mark.asyncio
    async def test_create_uses_injected_ids(
        self, tournament_repo, publisher, clock, test_settings, base_time
    ):
        service = TournamentService(
            tournament_repo, publisher, clock, test_settings, id_factory=lambda: "fixed-id"
        )
        tournament = await create_ready(service, base_time)
        assert tournament.tournament_id == "fixed-id"

    @pytest.mark.asyncio
    async def test_get_unknown_raises(self, tournament_service):
        with pytest.raises(AggregateNotFoundError) as exc_info:
            await tournament_service.get_tournament("missing")
        assert exc_info.value.recoverable is False


class TestLifecycleOperations:
    @pytest.mark.asyncio
    async def test_publish_start_finish(self, tournament_service, publisher, base_time):
        created = await create_ready(tournament_service, base_time)
        tid = created.tournament_id

        published = await tournament_service.publish(tid)
        assert published.status is TournamentStatus.PUBLISHED
        assert published.version == 2

        await tournament_service.admit_participant(tid, "user-1")
        await tournament_service.admit_participant(tid, "user-2")

        started = await tournament_service.start(tid)
        assert started.status is TournamentStatus.IN_PROGRESS

        finished = await tournament_service.finish(tid)
        assert finished.status is TournamentStatus.FINISHED

        assert [e.event_type for e in publisher.events] == [
            DomainEventType.TOURNAMENT_CREATED,
            DomainEventType.TOURNAMENT_PUBLISHED,
            DomainEventType.PARTICIPANT_ADMITTED,
            DomainEventType.PARTICIPANT_ADMITTED,
            DomainEventType.TOURNAMENT_STARTED,
            DomainEventType.TOURNAMENT_FINISHED,
        ]
        assert [e.version for e in publisher.events] == [1, 2, 3, 4, 5, 6]

    @pytest.mark.asyncio
    async def test_failed_operation_leaves_store_and_events_untouched(
        self, tournament_service, tournament_repo, publisher, base_time
    ):
        created = await create_ready(tournament_service, base_time)
        publisher.clear()

        with pytest.raises(InvalidTransitionError):
            await tournament_service.finish(created.tournament_id)

        stored = await tournament_repo.get(created.tournament_id)
        assert stored == created
        assert publisher.events == []

    @pytest.mark.asyncio
    async def test_cancel_records_previous_status(self, tournament_service, publisher, base_time):
        created = await create_ready(tournament_service, base_time)
        await tournament_service.publish(created.tournament_id)
        cancelled = await tournament_service.cancel(created.tournament_id)

        assert cancelled.status is TournamentStatus.CANCELLED
        [event] = publisher.of_type(DomainEventType.TOURNAMENT_CANCELLED)
        assert event.data == {"previous_status": "published"}

    @pytest.mark.asyncio
    async def test_start_uses_configured_minimum(
        self, tournament_repo, publisher, clock, settings_factory, base_time
    ):
        service = TournamentService(
            tournament_repo, publisher, clock, settings_factory(min_participants_to_start=3)
        )
        created = await create_ready(service, base_time)
        await service.publish(created.tournament_id)
        await service.admit_participant(created.tournament_id, "a")
        await service.admit_participant(created.tournament_id, "b")

        with pytest.raises(InsufficientParticipantsError):
            await service.start(created.tournament_id)


class TestParticipantOperations:
    @pytest.mark.asyncio
    async def test_admit_returns_participant(self, tournament_service, publisher, base_time):
        created = await create_ready(tournament_service, base_time)
        await tournament_service.publish(created.tournament_id)

        participant = await tournament_service.admit_participant(
            created.tournament_id, "user-1", team_name="Falcons"
        )
        assert participant.user_id == "user-1"
        assert participant.status is ParticipantStatus.REGISTERED

        [event] = publisher.of_type(DomainEventType.PARTICIPANT_ADMITTED)
        assert event.aggregate_id == created.tournament_id
        assert event.data["participant_id"] == participant.participant_id
        assert event.data["current_participants"] == 1

    @pytest.mark.asyncio
    async def test_admission_uses_clock(self, tournament_service, clock, base_time):
        created = await create_ready(tournament_service, base_time)
        await tournament_service.publish(created.tournament_id)
        clock.advance(timedelta(days=1))

        with pytest.raises(RegistrationWindowClosedError):
            await tournament_service.admit_participant(created.tournament_id, "late")

    @pytest.mark.asyncio
    async def test_confirm_cancel_disqualify(self, tournament_service, publisher, base_time):
        created = await create_ready(tournament_service, base_time)
        tid = created.tournament_id
        await tournament_service.publish(tid)
        for user in ("a", "b", "c"):
            await tournament_service.admit_participant(tid, user)

        confirmed = await tournament_service.confirm_participant(tid, "a")
        cancelled = await tournament_service.cancel_participant(tid, "b")
        disqualified = await tournament_service.disqualify_participant(tid, "c", "cheating")

        assert confirmed.status is ParticipantStatus.CONFIRMED
        assert cancelled.status is ParticipantStatus.CANCELLED
        assert disqualified.notes == "DISQUALIFIED: cheating"

        tournament = await tournament_service.get_tournament(tid)
        assert tournament.current_participants == 1

        [event] = publisher.of_type(DomainEventType.PARTICIPANT_DISQUALIFIED)
        assert event.data["participant_status"] == "disqualified"


class TestEditsAndDeletion:
    @pytest.mark.asyncio
    async def test_update_basic_info(self, tournament_service, base_time):
        created = await create_ready(tournament_service, base_time)
        updated = await tournament_service.update_basic_info(
            created.tournament_id,
            tournament_type=TournamentType.PAID,
            entry_fee=Decimal("25.00"),
        )
        assert updated.entry_fee == Decimal("25.00")
        assert updated.version == created.version + 1

    @pytest.mark.asyncio
    async def test_update_dates_refused_after_publish(self, tournament_service, base_time):
        created = await create_ready(tournament_service, base_time)
        await tournament_service.publish(created.tournament_id)
        with pytest.raises(InvalidStateError):
            await tournament_service.update_dates(
                created.tournament_id,
                created.start_date,
                created.end_date,
                created.registration_start,
                created.registration_end,
            )

    @pytest.mark.asyncio
    async def test_configure_streaming(self, tournament_service, base_time):
        created = await create_ready(tournament_service, base_time)
        updated = await tournament_service.configure_streaming(
            created.tournament_id, "https://youtube.com/live/cup", "youtube"
        )
        assert updated.stream_url == "https://youtube.com/live/cup"

    @pytest.mark.asyncio
    async def test_deleted_tournament_disappears(self, tournament_service, publisher, base_time):
        created = await create_ready(tournament_service, base_time)
        await tournament_service.delete_tournament(created.tournament_id)

        with pytest.raises(AggregateNotFoundError):
            await tournament_service.get_tournament(created.tournament_id)
        assert await tournament_service.list_tournaments() == []
        assert publisher.of_type(DomainEventType.TOURNAMENT_DELETED)


class TestQueries:
    @pytest.mark.asyncio
    async def test_open_and_starting_soon(self, tournament_service, clock, base_time):
        open_one = await create_ready(tournament_service, base_time, name="Open")
        await tournament_service.publish(open_one.tournament_id)

        later = await create_ready(
            tournament_service,
            base_time,
            name="Later",
            registration_start=base_time + timedelta(days=5),
            registration_end=base_time + timedelta(days=6),
            start_date=base_time + timedelta(days=7),
            end_date=base_time + timedelta(days=8),
        )
        await tournament_service.publish(later.tournament_id)
        await create_ready(tournament_service, base_time, name="Draft")

        open_ids = [t.tournament_id for t in await tournament_service.list_open_for_registration()]
        assert open_ids == [open_one.tournament_id]

        soon = await tournament_service.list_starting_soon(hours=72)
        assert [t.name for t in soon] == ["Open"]

    @pytest.mark.asyncio
    async def test_stats(self, tournament_service, base_time):
        paid = await create_ready(
            tournament_service,
            base_time,
            tournament_type=TournamentType.PAID,
            entry_fee=Decimal("20.00"),
            commission_rate=Decimal("0.10"),
        )
        await tournament_service.publish(paid.tournament_id)
        await tournament_service.admit_participant(paid.tournament_id, "a")
        await create_ready(tournament_service, base_time)

        stats = await tournament_service.get_stats()
        assert stats.total == 2
        assert stats.by_status["draft"] == 1
        assert stats.by_status["published"] == 1
        assert stats.total_participants == 1
        assert stats.total_commission == Decimal("2.00")


class TestConflictHandling:
    """Version conflicts are retried with fresh state, then surfaced."""

    @pytest.mark.asyncio
    async def test_retry_after_conflict(self, tournament_service, tournament_repo, base_time):
        created = await create_ready(tournament_service, base_time)
        real_save = tournament_repo.save
        tournament_repo.save = AsyncMock(
            side_effect=_fail_once_then(real_save, created.tournament_id)
        )

        published = await tournament_service.publish(created.tournament_id)
        assert published.status is TournamentStatus.PUBLISHED
        assert tournament_repo.save.await_count == 2

    @pytest.mark.asyncio
    async def test_conflict_exhaustion_propagates(
        self, tournament_service, tournament_repo, publisher, base_time
    ):
        created = await create_ready(tournament_service, base_time)
        publisher.clear()
        tournament_repo.save = AsyncMock(
            side_effect=ConcurrentModificationError("Tournament", created.tournament_id, 1)
        )

        with pytest.raises(ConcurrentModificationError):
            await tournament_service.publish(created.tournament_id)

        assert tournament_repo.save.await_count == 3
        assert publisher.events == []

    @pytest.mark.asyncio
    async def test_storage_error_is_not_retried(
        self, tournament_service, tournament_repo, base_time
    ):
        created = await create_ready(tournament_service, base_time)
        tournament_repo.save = AsyncMock(side_effect=StorageError("database down"))

        with pytest.raises(StorageError):
            await tournament_service.publish(created.tournament_id)
        assert tournament_repo.save.await_count == 1

    @pytest.mark.asyncio
    async def test_publisher_failure_surfaces_after_commit(
        self, tournament_service, tournament_repo, publisher, base_time
    ):
        created = await create_ready(tournament_service, base_time)
        publisher.publish = AsyncMock(
            side_effect=StorageError("stream down", details={"committed": True})
        )

        with pytest.raises(StorageError) as exc_info:
            await tournament_service.publish(created.tournament_id)

        assert exc_info.value.details["committed"] is True
        stored = await tournament_repo.get(created.tournament_id)
        assert stored.status is TournamentStatus.PUBLISHED


def _fail_once_then(real_save, tournament_id):
    calls = {"n": 0}

    async def side_effect(tournament):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConcurrentModificationError("Tournament", tournament_id, tournament.version)
        return await real_save(tournament)

    return side_effect
