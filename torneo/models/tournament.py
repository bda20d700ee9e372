"""Tournament and participant records.

CHECK constraints repeat the aggregate invariants so that rows written by
other tools cannot violate them either.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from torneo.models.base import Base, TimestampMixin, UUIDMixin
from torneo.tournament.models import ParticipantStatus, TournamentStatus, TournamentType


class TournamentRecord(Base, UUIDMixin, TimestampMixin):
    """Persisted tournament aggregate root."""

    __tablename__ = "tournaments"
    __table_args__ = (
        CheckConstraint("max_participants > 0", name="ck_tournaments_max_positive"),
        CheckConstraint(
            "current_participants >= 0 AND current_participants <= max_participants",
            name="ck_tournaments_capacity",
        ),
        CheckConstraint(
            "(type = 'free' AND entry_fee = 0) OR (type = 'paid' AND entry_fee > 0)",
            name="ck_tournaments_fee_matches_type",
        ),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 1",
            name="ck_tournaments_commission_rate",
        ),
        CheckConstraint("prize_pool >= 0", name="ck_tournaments_prize_pool"),
        CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date > start_date",
            name="ck_tournaments_dates",
        ),
        CheckConstraint(
            "registration_end IS NULL OR registration_start IS NULL "
            "OR registration_end > registration_start",
            name="ck_tournaments_registration_window",
        ),
        CheckConstraint(
            "registration_end IS NULL OR start_date IS NULL "
            "OR registration_end <= start_date",
            name="ck_tournaments_registration_before_start",
        ),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[TournamentType] = mapped_column(
        SQLEnum(
            TournamentType,
            name="tournament_type",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
    )
    status: Mapped[TournamentStatus] = mapped_column(
        SQLEnum(
            TournamentStatus,
            name="tournament_status",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=TournamentStatus.DRAFT,
        index=True,
    )

    # External references (owned by other services)
    organizer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    game_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    current_participants: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    entry_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    prize_pool: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 4),  # 0.0500 = 5%
        nullable=False,
        default=Decimal("0.0500"),
    )

    start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    registration_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    registration_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    stream_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    stream_platform: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rules: Mapped[str | None] = mapped_column(Text, nullable=True)
    banner_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    participants: Mapped[list["ParticipantRecord"]] = relationship(
        "ParticipantRecord",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="ParticipantRecord.registered_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Tournament {self.id} ({self.status}, v{self.version})>"


class ParticipantRecord(Base, UUIDMixin, TimestampMixin):
    """Persisted participant, one per user per tournament."""

    __tablename__ = "tournament_participants"
    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_participant_user"),
    )

    tournament_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[ParticipantStatus] = mapped_column(
        SQLEnum(
            ParticipantStatus,
            name="participant_status",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=ParticipantStatus.REGISTERED,
    )
    team_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    tournament: Mapped["TournamentRecord"] = relationship(
        "TournamentRecord",
        back_populates="participants",
    )

    def __repr__(self) -> str:
        return f"<Participant {self.user_id} in {self.tournament_id} ({self.status})>"
