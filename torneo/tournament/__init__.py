"""
Tournament aggregate and its application service.

- Status state machine with an explicit transition table
- Registration window and capacity checks against one injected `now`
- Participant sub-entities owned by the tournament
"""

from .models import (
    Participant,
    ParticipantStatus,
    Tournament,
    TournamentStatus,
    TournamentType,
)
from .service import TournamentService, TournamentStats

__all__ = [
    "Participant",
    "ParticipantStatus",
    "Tournament",
    "TournamentStatus",
    "TournamentType",
    "TournamentService",
    "TournamentStats",
]
