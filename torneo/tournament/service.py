"""Tournament Service.

Runs each tournament operation as one read-modify-write against the stored
aggregate:

    now -> load -> aggregate method -> save (version check) -> publish -> log

A lost version check reloads and replays the whole unit, up to
`conflict_retry_attempts` times.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from torneo.clock import Clock, SystemClock
from torneo.config import Settings, get_settings
from torneo.events import DomainEvent, DomainEventType, EventPublisher
from torneo.logging_config import aggregate_context, get_logger
from torneo.repositories.base import TournamentRepository
from torneo.tournament.models import (
    Participant,
    Tournament,
    TournamentStatus,
    TournamentType,
)
from torneo.utils.errors import AggregateNotFoundError, ConcurrentModificationError
from torneo.utils.retry import retry_on_conflict

logger = get_logger(__name__)

# (tournament, now) -> (new tournament, event data)
Mutation = Callable[[Tournament, datetime], Tuple[Tournament, Dict[str, Any]]]


@dataclass
class TournamentStats:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    total_participants: int = 0
    total_commission: Decimal = Decimal("0.00")


class TournamentService:
    """Application service for the tournament aggregate."""

    def __init__(
        self,
        repository: TournamentRepository,
        publisher: EventPublisher,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.repository = repository
        self.publisher = publisher
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self._new_id = id_factory or (lambda: str(uuid4()))

    # =========================================================================
    # Plumbing
    # =========================================================================

    async def _load(self, tournament_id: str) -> Tournament:
        tournament = await self.repository.get(tournament_id)
        if tournament is None or tournament.is_deleted:
            raise AggregateNotFoundError("Tournament", tournament_id)
        return tournament

    async def _apply(
        self,
        tournament_id: str,
        event_type: DomainEventType,
        mutate: Mutation,
    ) -> Tuple[Tournament, Dict[str, Any]]:
        async def attempt() -> Tuple[Tournament, Dict[str, Any], datetime]:
            now = self.clock.now()
            current = await self._load(tournament_id)
            updated, data = mutate(current, now)
            try:
                saved = await self.repository.save(updated)
            except ConcurrentModificationError:
                logger.warning(
                    "tournament_version_conflict",
                    version=current.version,
                    operation=event_type.name.lower(),
                )
                raise
            return saved, data, now

        with aggregate_context(tournament_id=tournament_id):
            saved, data, now = await retry_on_conflict(
                attempt, self.settings.conflict_retry_attempts
            )
        await self._publish(event_type, saved, now, data)
        return saved, data

    async def _publish(
        self,
        event_type: DomainEventType,
        tournament: Tournament,
        now: datetime,
        data: Dict[str, Any],
    ) -> None:
        await self.publisher.publish(
            DomainEvent(
                event_type=event_type,
                aggregate_id=tournament.tournament_id,
                status=tournament.status.value,
                version=tournament.version,
                timestamp=now,
                data=data,
            )
        )
        logger.info(
            event_type.name.lower(),
            tournament_id=tournament.tournament_id,
            status=tournament.status.value,
            version=tournament.version,
            **data,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_tournament(
        self,
        name: str,
        organizer_id: str,
        max_participants: int,
        tournament_type: TournamentType = TournamentType.FREE,
        entry_fee: Decimal = Decimal("0.00"),
        prize_pool: Decimal = Decimal("0.00"),
        commission_rate: Optional[Decimal] = None,
        description: Optional[str] = None,
        category_id: Optional[str] = None,
        game_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        registration_start: Optional[datetime] = None,
        registration_end: Optional[datetime] = None,
        rules: Optional[str] = None,
        banner_image_url: Optional[str] = None,
    ) -> Tournament:
        """Create a DRAFT tournament.

        Raises:
            InvalidArgumentError: Any construction invariant is broken
        """
        now = self.clock.now()
        tournament = Tournament(
            tournament_id=self._new_id(),
            name=name,
            organizer_id=organizer_id,
            max_participants=max_participants,
            tournament_type=tournament_type,
            entry_fee=entry_fee,
            prize_pool=prize_pool,
            commission_rate=(
                commission_rate
                if commission_rate is not None
                else self.settings.default_commission_rate
            ),
            description=description,
            category_id=category_id,
            game_id=game_id,
            start_date=start_date,
            end_date=end_date,
            registration_start=registration_start,
            registration_end=registration_end,
            rules=rules,
            banner_image_url=banner_image_url,
            created_at=now,
        )
        saved = await self.repository.add(tournament)
        await self._publish(
            DomainEventType.TOURNAMENT_CREATED,
            saved,
            now,
            {"organizer_id": organizer_id, "type": saved.tournament_type.value},
        )
        return saved

    async def get_tournament(self, tournament_id: str) -> Tournament:
        return await self._load(tournament_id)

    async def publish(self, tournament_id: str) -> Tournament:
        saved, _ = await self._apply(
            tournament_id,
            DomainEventType.TOURNAMENT_PUBLISHED,
            lambda t, now: (t.publish(), {}),
        )
        return saved

    async def start(self, tournament_id: str) -> Tournament:
        min_participants = self.settings.min_participants_to_start
        saved, _ = await self._apply(
            tournament_id,
            DomainEventType.TOURNAMENT_STARTED,
            lambda t, now: (
                t.start(min_participants),
                {"participants": t.current_participants},
            ),
        )
        return saved

    async def finish(self, tournament_id: str) -> Tournament:
        saved, _ = await self._apply(
            tournament_id,
            DomainEventType.TOURNAMENT_FINISHED,
            lambda t, now: (t.finish(), {}),
        )
        return saved

    async def cancel(self, tournament_id: str) -> Tournament:
        saved, _ = await self._apply(
            tournament_id,
            DomainEventType.TOURNAMENT_CANCELLED,
            lambda t, now: (t.cancel(), {"previous_status": t.status.value}),
        )
        return saved

    async def delete_tournament(self, tournament_id: str) -> Tournament:
        """Soft delete. Refused while the tournament is IN_PROGRESS."""
        saved, _ = await self._apply(
            tournament_id,
            DomainEventType.TOURNAMENT_DELETED,
            lambda t, now: (t.mark_deleted(now), {}),
        )
        return saved

    # =========================================================================
    # Participants
    # =========================================================================

    async def admit_participant(
        self,
        tournament_id: str,
        user_id: str,
        team_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Participant:
        """Register a user, taking one slot.

        Raises:
            RegistrationClosedError: Tournament is not PUBLISHED
            RegistrationWindowClosedError: Outside the registration window
            AlreadyRegisteredError: User already holds a record
            CapacityExceededError: No free slot
            ConcurrentModificationError: Lost the version check on every attempt
        """
        participant_id = self._new_id()

        def mutate(t: Tournament, now: datetime) -> Tuple[Tournament, Dict[str, Any]]:
            updated, participant = t.admit_participant(
                user_id,
                now,
                team_name=team_name,
                notes=notes,
                participant_id=participant_id,
            )
            return updated, {
                "participant_id": participant.participant_id,
                "user_id": user_id,
                "current_participants": updated.current_participants,
            }

        saved, _ = await self._apply(
            tournament_id, DomainEventType.PARTICIPANT_ADMITTED, mutate
        )
        return saved.get_participant(user_id)

    async def _participant_op(
        self,
        tournament_id: str,
        user_id: str,
        event_type: DomainEventType,
        op: Callable[[Tournament], Tuple[Tournament, Participant]],
    ) -> Participant:
        def mutate(t: Tournament, now: datetime) -> Tuple[Tournament, Dict[str, Any]]:
            updated, participant = op(t)
            return updated, {
                "participant_id": participant.participant_id,
                "user_id": user_id,
                "participant_status": participant.status.value,
                "current_participants": updated.current_participants,
            }

        saved, _ = await self._apply(tournament_id, event_type, mutate)
        return saved.get_participant(user_id)

    async def confirm_participant(self, tournament_id: str, user_id: str) -> Participant:
        return await self._participant_op(
            tournament_id,
            user_id,
            DomainEventType.PARTICIPANT_CONFIRMED,
            lambda t: t.confirm_participant(user_id),
        )

    async def cancel_participant(self, tournament_id: str, user_id: str) -> Participant:
        return await self._participant_op(
            tournament_id,
            user_id,
            DomainEventType.PARTICIPANT_CANCELLED,
            lambda t: t.cancel_participant(user_id),
        )

    async def disqualify_participant(
        self, tournament_id: str, user_id: str, reason: str
    ) -> Participant:
        return await self._participant_op(
            tournament_id,
            user_id,
            DomainEventType.PARTICIPANT_DISQUALIFIED,
            lambda t: t.disqualify_participant(user_id, reason),
        )

    # =========================================================================
    # Edits
    # =========================================================================

    async def update_basic_info(self, tournament_id: str, **changes: Any) -> Tournament:
        """Apply `Tournament.update_basic_info(**changes)`; DRAFT only."""
        return await self._edit(
            tournament_id, lambda t: t.update_basic_info(**changes), sorted(changes)
        )

    async def update_dates(
        self,
        tournament_id: str,
        start_date: datetime,
        end_date: datetime,
        registration_start: datetime,
        registration_end: datetime,
    ) -> Tournament:
        return await self._edit(
            tournament_id,
            lambda t: t.update_dates(
                start_date, end_date, registration_start, registration_end
            ),
            ["dates"],
        )

    async def configure_streaming(
        self,
        tournament_id: str,
        stream_url: Optional[str],
        stream_platform: Optional[str],
    ) -> Tournament:
        return await self._edit(
            tournament_id,
            lambda t: t.configure_streaming(stream_url, stream_platform),
            ["streaming"],
        )

    async def _edit(
        self,
        tournament_id: str,
        change: Callable[[Tournament], Tournament],
        fields: List[str],
    ) -> Tournament:
        # Edits publish no domain event; they are logged only
        async def attempt() -> Tournament:
            current = await self._load(tournament_id)
            try:
                return await self.repository.save(change(current))
            except ConcurrentModificationError:
                logger.warning(
                    "tournament_version_conflict",
                    version=current.version,
                    operation="edit",
                )
                raise

        with aggregate_context(tournament_id=tournament_id):
            saved = await retry_on_conflict(
                attempt, self.settings.conflict_retry_attempts
            )
        logger.info(
            "tournament_updated",
            tournament_id=tournament_id,
            fields=fields,
            version=saved.version,
        )
        return saved

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_tournaments(
        self,
        status: Optional[TournamentStatus] = None,
        organizer_id: Optional[str] = None,
    ) -> List[Tournament]:
        return await self.repository.list(status=status, organizer_id=organizer_id)

    async def list_open_for_registration(self) -> List[Tournament]:
        now = self.clock.now()
        published = await self.repository.list(status=TournamentStatus.PUBLISHED)
        return [t for t in published if t.can_register_participants(now)]

    async def list_starting_soon(self, hours: int = 24) -> List[Tournament]:
        """PUBLISHED tournaments starting within the next `hours`."""
        now = self.clock.now()
        horizon = now + timedelta(hours=hours)
        published = await self.repository.list(status=TournamentStatus.PUBLISHED)
        return sorted(
            (t for t in published if t.start_date and now <= t.start_date <= horizon),
            key=lambda t: t.start_date,
        )

    async def get_stats(self) -> TournamentStats:
        stats = TournamentStats(by_status={s.value: 0 for s in TournamentStatus})
        for tournament in await self.repository.list():
            stats.total += 1
            stats.by_status[tournament.status.value] += 1
            stats.total_participants += tournament.current_participants
            stats.total_commission += tournament.total_commission()
        return stats
