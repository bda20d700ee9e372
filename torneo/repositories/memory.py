"""In-process repositories.

Reads yield to the event loop before returning, so concurrent operations
interleave between load and save the way they would against a database.
Writes compare-and-swap under a lock.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from torneo.ticket.models import Ticket, TicketStatus
from torneo.tournament.models import Tournament, TournamentStatus
from torneo.utils.errors import ConcurrentModificationError, StorageError


class InMemoryTournamentRepository:
    def __init__(self) -> None:
        self._items: Dict[str, Tournament] = {}
        self._lock = asyncio.Lock()

    async def get(self, tournament_id: str) -> Optional[Tournament]:
        await asyncio.sleep(0)
        return self._items.get(tournament_id)

    async def add(self, tournament: Tournament) -> Tournament:
        async with self._lock:
            if tournament.tournament_id in self._items:
                raise StorageError(
                    "Tournament already exists",
                    details={"tournamentId": tournament.tournament_id},
                )
            stored = replace(tournament, version=1)
            self._items[stored.tournament_id] = stored
            return stored

    async def save(self, tournament: Tournament) -> Tournament:
        async with self._lock:
            current = self._items.get(tournament.tournament_id)
            if current is None or current.version != tournament.version:
                raise ConcurrentModificationError(
                    "Tournament", tournament.tournament_id, tournament.version
                )
            stored = replace(tournament, version=tournament.version + 1)
            self._items[stored.tournament_id] = stored
            return stored

    async def list(
        self,
        status: Optional[TournamentStatus] = None,
        organizer_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Tournament]:
        return [
            t
            for t in self._items.values()
            if (status is None or t.status is status)
            and (organizer_id is None or t.organizer_id == organizer_id)
            and (include_deleted or not t.is_deleted)
        ]


class InMemoryTicketRepository:
    def __init__(self) -> None:
        self._items: Dict[str, Ticket] = {}
        self._lock = asyncio.Lock()

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        await asyncio.sleep(0)
        return self._items.get(ticket_id)

    async def get_by_code(self, ticket_code: str) -> Optional[Ticket]:
        await asyncio.sleep(0)
        for ticket in self._items.values():
            if ticket.ticket_code == ticket_code:
                return ticket
        return None

    async def code_exists(self, ticket_code: str) -> bool:
        return any(t.ticket_code == ticket_code for t in self._items.values())

    async def add(self, ticket: Ticket) -> Ticket:
        async with self._lock:
            if ticket.ticket_id in self._items or await self.code_exists(
                ticket.ticket_code
            ):
                raise StorageError(
                    "Ticket id or code already exists",
                    details={"ticketId": ticket.ticket_id, "ticketCode": ticket.ticket_code},
                )
            stored = replace(ticket, version=1)
            self._items[stored.ticket_id] = stored
            return stored

    async def save(self, ticket: Ticket) -> Ticket:
        async with self._lock:
            current = self._items.get(ticket.ticket_id)
            if current is None or current.version != ticket.version:
                raise ConcurrentModificationError(
                    "Ticket", ticket.ticket_id, ticket.version
                )
            stored = replace(ticket, version=ticket.version + 1)
            self._items[stored.ticket_id] = stored
            return stored

    async def list(
        self,
        tournament_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[TicketStatus] = None,
    ) -> List[Ticket]:
        return [
            t
            for t in self._items.values()
            if (tournament_id is None or t.tournament_id == tournament_id)
            and (user_id is None or t.user_id == user_id)
            and (status is None or t.status is status)
        ]

    async def list_expirable(self, now: datetime, limit: int) -> List[Ticket]:
        due = [t for t in self._items.values() if t.is_expirable(now)]
        due.sort(key=lambda t: t.expiration_date)
        return due[:limit]
