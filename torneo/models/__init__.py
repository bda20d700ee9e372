"""Database models."""

from torneo.models.base import Base, TimestampMixin, UUIDMixin
from torneo.models.ticket import TicketRecord
from torneo.models.tournament import ParticipantRecord, TournamentRecord

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Tournament
    "TournamentRecord",
    "ParticipantRecord",
    # Ticket
    "TicketRecord",
]
