"""
Tournament Data Models.

Immutable state representations for tournaments and their participants.
Every state-changing method returns a new instance; the receiver is never
touched, so a failed call leaves no partial effect behind.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from uuid import uuid4

from torneo.clock import require_aware
from torneo.commission import ZERO, calculate_commission
from torneo.utils.errors import (
    AlreadyRegisteredError,
    CapacityExceededError,
    IncompleteConfigurationError,
    InsufficientParticipantsError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTransitionError,
    RegistrationClosedError,
    RegistrationWindowClosedError,
)

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 2000
TEAM_NAME_MAX_LENGTH = 50
STREAM_URL_MAX_LENGTH = 500
STREAM_PLATFORM_MAX_LENGTH = 50
BANNER_URL_MAX_LENGTH = 500

MIN_PARTICIPANTS_TO_START = 2

RATE_PLACES = Decimal("0.0001")
MONEY_PLACES = Decimal("0.01")


class TournamentStatus(str, Enum):
    """Tournament lifecycle states."""

    DRAFT = "draft"
    PUBLISHED = "published"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not TOURNAMENT_TRANSITIONS[self]

    @property
    def allows_registration(self) -> bool:
        return self is TournamentStatus.PUBLISHED

    def can_transition_to(self, target: "TournamentStatus") -> bool:
        return target in TOURNAMENT_TRANSITIONS[self]


class TournamentType(str, Enum):
    FREE = "free"
    PAID = "paid"


class ParticipantStatus(str, Enum):
    """Participant registration states."""

    REGISTERED = "registered"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    DISQUALIFIED = "disqualified"

    @property
    def is_active(self) -> bool:
        return self in (ParticipantStatus.REGISTERED, ParticipantStatus.CONFIRMED)

    @property
    def is_terminal(self) -> bool:
        return not PARTICIPANT_TRANSITIONS[self]

    def can_transition_to(self, target: "ParticipantStatus") -> bool:
        return target in PARTICIPANT_TRANSITIONS[self]


# The complete transition matrices. Anything not listed is forbidden,
# including self-transitions.
TOURNAMENT_TRANSITIONS: Dict[TournamentStatus, FrozenSet[TournamentStatus]] = {
    TournamentStatus.DRAFT: frozenset(
        {TournamentStatus.PUBLISHED, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.PUBLISHED: frozenset(
        {TournamentStatus.IN_PROGRESS, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.IN_PROGRESS: frozenset(
        {TournamentStatus.FINISHED, TournamentStatus.CANCELLED}
    ),
    TournamentStatus.FINISHED: frozenset(),
    TournamentStatus.CANCELLED: frozenset(),
}

PARTICIPANT_TRANSITIONS: Dict[ParticipantStatus, FrozenSet[ParticipantStatus]] = {
    ParticipantStatus.REGISTERED: frozenset(
        {
            ParticipantStatus.CONFIRMED,
            ParticipantStatus.CANCELLED,
            ParticipantStatus.DISQUALIFIED,
        }
    ),
    ParticipantStatus.CONFIRMED: frozenset(
        {ParticipantStatus.CANCELLED, ParticipantStatus.DISQUALIFIED}
    ),
    ParticipantStatus.CANCELLED: frozenset(),
    ParticipantStatus.DISQUALIFIED: frozenset(),
}


def _decimal(value: Any, places: Decimal, field_name: str) -> Decimal:
    """Parse an amount, rejecting values finer than `places`."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidArgumentError(
            f"{field_name} is not a number", details={"field": field_name}
        ) from e
    if not amount.is_finite() or amount != amount.quantize(places):
        raise InvalidArgumentError(
            f"{field_name} has too many decimal places",
            details={"field": field_name, "value": str(value)},
        )
    return amount.quantize(places)


def _check_length(value: Optional[str], limit: int, field_name: str) -> None:
    if value is not None and len(value) > limit:
        raise InvalidArgumentError(
            f"{field_name} must be at most {limit} characters",
            details={"field": field_name},
        )


@dataclass(frozen=True)
class Participant:
    """
    Participant state - immutable.

    Owned by exactly one tournament; `tournament_id` is a plain identifier,
    never a reference to the tournament object.
    """

    participant_id: str
    tournament_id: str
    user_id: str
    registered_at: datetime
    status: ParticipantStatus = ParticipantStatus.REGISTERED
    team_name: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.user_id:
            raise InvalidArgumentError("user_id is required")
        require_aware(self.registered_at, "registered_at")
        _check_length(self.team_name, TEAM_NAME_MAX_LENGTH, "team_name")

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def _transition(self, target: ParticipantStatus, **changes: Any) -> "Participant":
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(
                "participant", self.status.value, target.value
            )
        return replace(self, status=target, **changes)

    def confirm(self) -> "Participant":
        return self._transition(ParticipantStatus.CONFIRMED)

    def cancel(self) -> "Participant":
        """Cancel the registration. Cancelling twice is a no-op."""
        if self.status is ParticipantStatus.CANCELLED:
            return self
        return self._transition(ParticipantStatus.CANCELLED)

    def disqualify(self, reason: str) -> "Participant":
        """Disqualify irreversibly, appending the reason to the notes."""
        if not reason or not reason.strip():
            raise InvalidArgumentError("A disqualification reason is required")
        line = f"DISQUALIFIED: {reason.strip()}"
        notes = f"{self.notes}\n{line}" if self.notes else line
        return self._transition(ParticipantStatus.DISQUALIFIED, notes=notes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "tournament_id": self.tournament_id,
            "user_id": self.user_id,
            "registered_at": self.registered_at.isoformat(),
            "status": self.status.value,
            "team_name": self.team_name,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class Tournament:
    """
    Tournament aggregate - immutable.

    Owns the status state machine, the date and capacity invariants and the
    participant collection. `version` is the optimistic-concurrency token;
    0 means "never stored", repositories bump it on every successful write.
    """

    tournament_id: str
    name: str
    organizer_id: str
    max_participants: int
    tournament_type: TournamentType = TournamentType.FREE
    status: TournamentStatus = TournamentStatus.DRAFT
    description: Optional[str] = None
    category_id: Optional[str] = None
    game_id: Optional[str] = None

    # Capacity
    current_participants: int = 0
    participants: Tuple[Participant, ...] = ()

    # Money
    entry_fee: Decimal = ZERO
    prize_pool: Decimal = ZERO
    commission_rate: Decimal = Decimal("0.0500")

    # Schedule
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    registration_start: Optional[datetime] = None
    registration_end: Optional[datetime] = None

    # Streaming / presentation
    stream_url: Optional[str] = None
    stream_platform: Optional[str] = None
    rules: Optional[str] = None
    banner_image_url: Optional[str] = None

    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        # Normalise amounts so equal values compare and persist identically
        object.__setattr__(
            self, "entry_fee", _decimal(self.entry_fee, MONEY_PLACES, "entry_fee")
        )
        object.__setattr__(
            self, "prize_pool", _decimal(self.prize_pool, MONEY_PLACES, "prize_pool")
        )
        object.__setattr__(
            self,
            "commission_rate",
            _decimal(self.commission_rate, RATE_PLACES, "commission_rate"),
        )
        object.__setattr__(self, "participants", tuple(self.participants))
        self._validate()

    def _validate(self) -> None:
        if self.name is None or len(self.name) > NAME_MAX_LENGTH:
            raise InvalidArgumentError(
                f"name must be at most {NAME_MAX_LENGTH} characters",
                details={"field": "name"},
            )
        if not self.organizer_id:
            raise InvalidArgumentError("organizer_id is required")
        _check_length(self.description, DESCRIPTION_MAX_LENGTH, "description")
        _check_length(self.stream_url, STREAM_URL_MAX_LENGTH, "stream_url")
        _check_length(
            self.stream_platform, STREAM_PLATFORM_MAX_LENGTH, "stream_platform"
        )
        _check_length(self.banner_image_url, BANNER_URL_MAX_LENGTH, "banner_image_url")

        if isinstance(self.max_participants, bool) or not isinstance(
            self.max_participants, int
        ):
            raise InvalidArgumentError("max_participants must be an integer")
        if self.max_participants < 1:
            raise InvalidArgumentError(
                "max_participants must be positive",
                details={"max_participants": self.max_participants},
            )
        if not 0 <= self.current_participants <= self.max_participants:
            raise InvalidArgumentError(
                "current_participants must be between 0 and max_participants",
                details={
                    "current_participants": self.current_participants,
                    "max_participants": self.max_participants,
                },
            )
        active = sum(1 for p in self.participants if p.is_active)
        if active != self.current_participants:
            raise InvalidArgumentError(
                "current_participants does not match active participants",
                details={"current_participants": self.current_participants, "active": active},
            )
        users = [p.user_id for p in self.participants]
        if len(users) != len(set(users)):
            raise InvalidArgumentError("A user may hold only one participant record")

        # Fee/type consistency
        if self.entry_fee < 0 or self.prize_pool < 0:
            raise InvalidArgumentError("Amounts must not be negative")
        if self.tournament_type is TournamentType.FREE and self.entry_fee != 0:
            raise InvalidArgumentError(
                "A free tournament must have a zero entry fee",
                details={"entry_fee": str(self.entry_fee)},
            )
        if self.tournament_type is TournamentType.PAID and self.entry_fee <= 0:
            raise InvalidArgumentError(
                "A paid tournament must have a positive entry fee",
                details={"entry_fee": str(self.entry_fee)},
            )
        if not 0 <= self.commission_rate <= 1:
            raise InvalidArgumentError(
                "commission_rate must be between 0 and 1",
                details={"commission_rate": str(self.commission_rate)},
            )

        for field_name in (
            "start_date",
            "end_date",
            "registration_start",
            "registration_end",
        ):
            require_aware(getattr(self, field_name), field_name)

        # Date ordering: registration_start < registration_end <= start_date < end_date
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise InvalidArgumentError("end_date must be after start_date")
        if (
            self.registration_start
            and self.registration_end
            and self.registration_end <= self.registration_start
        ):
            raise InvalidArgumentError(
                "registration_end must be after registration_start"
            )
        if (
            self.registration_end
            and self.start_date
            and self.registration_end > self.start_date
        ):
            raise InvalidArgumentError(
                "registration_end must not be after start_date"
            )

    # =========================================================================
    # Derived values
    # =========================================================================

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def available_slots(self) -> int:
        return self.max_participants - self.current_participants

    @property
    def has_available_slots(self) -> bool:
        return self.current_participants < self.max_participants

    @property
    def active_participants(self) -> List[Participant]:
        return [p for p in self.participants if p.is_active]

    def is_registration_open(self, now: datetime) -> bool:
        """True iff `now` lies strictly inside the registration window."""
        if self.registration_start is None or self.registration_end is None:
            return False
        return self.registration_start < now < self.registration_end

    def can_register_participants(self, now: datetime) -> bool:
        return (
            self.status.allows_registration
            and self.is_registration_open(now)
            and self.has_available_slots
        )

    def total_commission(self) -> Decimal:
        """Commission over all active entries; always zero for free tournaments."""
        if self.tournament_type is TournamentType.FREE:
            return ZERO
        # Rounded per entry so the total matches the sum over issued tickets
        return (
            calculate_commission(self.entry_fee, self.commission_rate)
            * self.current_participants
        )

    def get_participant(self, user_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def missing_publish_fields(self) -> List[str]:
        required = {
            "name": self.name.strip() if self.name else None,
            "category_id": self.category_id,
            "game_id": self.game_id,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "registration_start": self.registration_start,
            "registration_end": self.registration_end,
        }
        return [name for name, value in required.items() if not value]

    # =========================================================================
    # Status transitions
    # =========================================================================

    def _transition(self, target: TournamentStatus) -> "Tournament":
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(
                "tournament", self.status.value, target.value
            )
        return replace(self, status=target)

    def publish(self) -> "Tournament":
        if not self.status.can_transition_to(TournamentStatus.PUBLISHED):
            raise InvalidTransitionError(
                "tournament", self.status.value, TournamentStatus.PUBLISHED.value
            )
        missing = self.missing_publish_fields()
        if missing:
            raise IncompleteConfigurationError(missing)
        return replace(self, status=TournamentStatus.PUBLISHED)

    def start(self, min_participants: int = MIN_PARTICIPANTS_TO_START) -> "Tournament":
        if not self.status.can_transition_to(TournamentStatus.IN_PROGRESS):
            raise InvalidTransitionError(
                "tournament", self.status.value, TournamentStatus.IN_PROGRESS.value
            )
        required = max(min_participants, MIN_PARTICIPANTS_TO_START)
        if self.current_participants < required:
            raise InsufficientParticipantsError(self.current_participants, required)
        return replace(self, status=TournamentStatus.IN_PROGRESS)

    def finish(self) -> "Tournament":
        return self._transition(TournamentStatus.FINISHED)

    def cancel(self) -> "Tournament":
        return self._transition(TournamentStatus.CANCELLED)

    def mark_deleted(self, now: datetime) -> "Tournament":
        if self.status is TournamentStatus.IN_PROGRESS:
            raise InvalidStateError("delete", self.status.value)
        if self.is_deleted:
            return self
        return replace(self, deleted_at=now)

    # =========================================================================
    # Participants
    # =========================================================================

    def admit_participant(
        self,
        user_id: str,
        now: datetime,
        team_name: Optional[str] = None,
        notes: Optional[str] = None,
        participant_id: Optional[str] = None,
    ) -> Tuple["Tournament", Participant]:
        """Append a REGISTERED participant and take one slot.

        Status, window and capacity are all judged against the same `now`.
        """
        if not self.status.allows_registration:
            raise RegistrationClosedError(self.tournament_id, self.status.value)
        if not self.is_registration_open(now):
            raise RegistrationWindowClosedError(self.tournament_id)
        if self.get_participant(user_id) is not None:
            raise AlreadyRegisteredError(self.tournament_id, user_id)
        if not self.has_available_slots:
            raise CapacityExceededError(self.tournament_id, self.max_participants)

        participant = Participant(
            participant_id=participant_id or str(uuid4()),
            tournament_id=self.tournament_id,
            user_id=user_id,
            registered_at=now,
            team_name=team_name,
            notes=notes,
        )
        updated = replace(
            self,
            participants=self.participants + (participant,),
            current_participants=self.current_participants + 1,
        )
        return updated, participant

    def _require_participant(self, user_id: str) -> Participant:
        participant = self.get_participant(user_id)
        if participant is None:
            raise InvalidArgumentError(
                "User is not registered in this tournament",
                details={"tournamentId": self.tournament_id, "userId": user_id},
            )
        return participant

    def _with_participant(
        self, before: Participant, after: Participant
    ) -> Tuple["Tournament", Participant]:
        if after is before:
            return self, after
        participants = tuple(
            after if p.participant_id == before.participant_id else p
            for p in self.participants
        )
        # Leaving the active set frees the slot
        freed = 1 if before.is_active and not after.is_active else 0
        updated = replace(
            self,
            participants=participants,
            current_participants=self.current_participants - freed,
        )
        return updated, after

    def confirm_participant(self, user_id: str) -> Tuple["Tournament", Participant]:
        participant = self._require_participant(user_id)
        return self._with_participant(participant, participant.confirm())

    def cancel_participant(self, user_id: str) -> Tuple["Tournament", Participant]:
        participant = self._require_participant(user_id)
        return self._with_participant(participant, participant.cancel())

    def disqualify_participant(
        self, user_id: str, reason: str
    ) -> Tuple["Tournament", Participant]:
        participant = self._require_participant(user_id)
        return self._with_participant(participant, participant.disqualify(reason))

    # =========================================================================
    # Edits (DRAFT only)
    # =========================================================================

    def _require_draft(self, action: str) -> None:
        if self.status is not TournamentStatus.DRAFT:
            raise InvalidStateError(action, self.status.value)

    def update_basic_info(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        tournament_type: Optional[TournamentType] = None,
        max_participants: Optional[int] = None,
        entry_fee: Optional[Decimal] = None,
        prize_pool: Optional[Decimal] = None,
        commission_rate: Optional[Decimal] = None,
        category_id: Optional[str] = None,
        game_id: Optional[str] = None,
        rules: Optional[str] = None,
        banner_image_url: Optional[str] = None,
    ) -> "Tournament":
        """Apply the given fields; None leaves a field unchanged."""
        self._require_draft("update basic info")
        changes = {
            "name": name,
            "description": description,
            "tournament_type": tournament_type,
            "max_participants": max_participants,
            "entry_fee": entry_fee,
            "prize_pool": prize_pool,
            "commission_rate": commission_rate,
            "category_id": category_id,
            "game_id": game_id,
            "rules": rules,
            "banner_image_url": banner_image_url,
        }
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def update_dates(
        self,
        start_date: datetime,
        end_date: datetime,
        registration_start: datetime,
        registration_end: datetime,
    ) -> "Tournament":
        self._require_draft("update dates")
        return replace(
            self,
            start_date=start_date,
            end_date=end_date,
            registration_start=registration_start,
            registration_end=registration_end,
        )

    def configure_streaming(
        self, stream_url: Optional[str], stream_platform: Optional[str]
    ) -> "Tournament":
        if self.status.is_terminal:
            raise InvalidStateError("configure streaming", self.status.value)
        return replace(self, stream_url=stream_url, stream_platform=stream_platform)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "name": self.name,
            "type": self.tournament_type.value,
            "status": self.status.value,
            "organizer_id": self.organizer_id,
            "category_id": self.category_id,
            "game_id": self.game_id,
            "max_participants": self.max_participants,
            "current_participants": self.current_participants,
            "entry_fee": str(self.entry_fee),
            "prize_pool": str(self.prize_pool),
            "commission_rate": str(self.commission_rate),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "stream_url": self.stream_url,
            "stream_platform": self.stream_platform,
            "version": self.version,
        }
