"""Repository interfaces.

`save` is a compare-and-swap on the aggregate's `version`: it succeeds only
when the stored version still equals the one the caller loaded, and returns
the stored copy carrying `version + 1`.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Protocol

if TYPE_CHECKING:
    from torneo.ticket.models import Ticket, TicketStatus
    from torneo.tournament.models import Tournament, TournamentStatus


class TournamentRepository(Protocol):
    async def get(self, tournament_id: str) -> Optional[Tournament]:
        ...

    async def add(self, tournament: Tournament) -> Tournament:
        ...

    async def save(self, tournament: Tournament) -> Tournament:
        ...

    async def list(
        self,
        status: Optional[TournamentStatus] = None,
        organizer_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Tournament]:
        ...


class TicketRepository(Protocol):
    async def get(self, ticket_id: str) -> Optional[Ticket]:
        ...

    async def get_by_code(self, ticket_code: str) -> Optional[Ticket]:
        ...

    async def code_exists(self, ticket_code: str) -> bool:
        ...

    async def add(self, ticket: Ticket) -> Ticket:
        ...

    async def save(self, ticket: Ticket) -> Ticket:
        ...

    async def list(
        self,
        tournament_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[TicketStatus] = None,
    ) -> List[Ticket]:
        ...

    async def list_expirable(self, now: datetime, limit: int) -> List[Ticket]:
        """Live tickets whose deadline is at or before `now`, oldest first."""
        ...
