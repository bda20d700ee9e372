"""SQLAlchemy repositories.

Every save is a conditional UPDATE on (id, version); zero rows updated means
another writer got there first. Driver and database failures surface as
StorageError.
"""

from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from torneo.models import ParticipantRecord, TicketRecord, TournamentRecord
from torneo.ticket.models import Ticket, TicketStatus
from torneo.tournament.models import Participant, Tournament, TournamentStatus
from torneo.utils.db import session_scope
from torneo.utils.errors import ConcurrentModificationError, StorageError


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except (TypeError, ValueError):
        return False
    return True


# =============================================================================
# Record <-> aggregate mapping
# =============================================================================


def participant_values(participant: Participant) -> Dict[str, Any]:
    return {
        "id": participant.participant_id,
        "tournament_id": participant.tournament_id,
        "user_id": participant.user_id,
        "registered_at": participant.registered_at,
        "status": participant.status,
        "team_name": participant.team_name,
        "notes": participant.notes,
    }


def participant_from_record(record: ParticipantRecord) -> Participant:
    return Participant(
        participant_id=record.id,
        tournament_id=record.tournament_id,
        user_id=record.user_id,
        registered_at=record.registered_at,
        status=record.status,
        team_name=record.team_name,
        notes=record.notes,
    )


def tournament_values(tournament: Tournament) -> Dict[str, Any]:
    """Column values for an UPDATE; excludes id, version and participants."""
    return {
        "name": tournament.name,
        "description": tournament.description,
        "type": tournament.tournament_type,
        "status": tournament.status,
        "organizer_id": tournament.organizer_id,
        "category_id": tournament.category_id,
        "game_id": tournament.game_id,
        "max_participants": tournament.max_participants,
        "current_participants": tournament.current_participants,
        "entry_fee": tournament.entry_fee,
        "prize_pool": tournament.prize_pool,
        "commission_rate": tournament.commission_rate,
        "start_date": tournament.start_date,
        "end_date": tournament.end_date,
        "registration_start": tournament.registration_start,
        "registration_end": tournament.registration_end,
        "stream_url": tournament.stream_url,
        "stream_platform": tournament.stream_platform,
        "rules": tournament.rules,
        "banner_image_url": tournament.banner_image_url,
        "deleted_at": tournament.deleted_at,
    }


def tournament_to_record(tournament: Tournament) -> TournamentRecord:
    record = TournamentRecord(
        id=tournament.tournament_id,
        version=tournament.version,
        **tournament_values(tournament),
    )
    if tournament.created_at is not None:
        record.created_at = tournament.created_at
    record.participants = [
        ParticipantRecord(**participant_values(p)) for p in tournament.participants
    ]
    return record


def tournament_from_record(record: TournamentRecord) -> Tournament:
    return Tournament(
        tournament_id=record.id,
        name=record.name,
        organizer_id=record.organizer_id,
        max_participants=record.max_participants,
        tournament_type=record.type,
        status=record.status,
        description=record.description,
        category_id=record.category_id,
        game_id=record.game_id,
        current_participants=record.current_participants,
        participants=tuple(participant_from_record(p) for p in record.participants),
        entry_fee=record.entry_fee,
        prize_pool=record.prize_pool,
        commission_rate=record.commission_rate,
        start_date=record.start_date,
        end_date=record.end_date,
        registration_start=record.registration_start,
        registration_end=record.registration_end,
        stream_url=record.stream_url,
        stream_platform=record.stream_platform,
        rules=record.rules,
        banner_image_url=record.banner_image_url,
        created_at=record.created_at,
        deleted_at=record.deleted_at,
        version=record.version,
    )


def ticket_values(ticket: Ticket) -> Dict[str, Any]:
    """Column values for an UPDATE; excludes id and version."""
    return {
        "ticket_code": ticket.ticket_code,
        "qr_payload": ticket.qr_payload,
        "status": ticket.status,
        "tournament_id": ticket.tournament_id,
        "user_id": ticket.user_id,
        "price": ticket.price,
        "commission": ticket.commission,
        "commission_rate": ticket.commission_rate,
        "reserved_at": ticket.reserved_at,
        "expiration_date": ticket.expiration_date,
        "valid_until": ticket.valid_until,
        "purchased_at": ticket.purchased_at,
        "used_at": ticket.used_at,
        "payment_reference": ticket.payment_reference,
    }


def ticket_to_record(ticket: Ticket) -> TicketRecord:
    return TicketRecord(id=ticket.ticket_id, version=ticket.version, **ticket_values(ticket))


def ticket_from_record(record: TicketRecord) -> Ticket:
    return Ticket(
        ticket_id=record.id,
        ticket_code=record.ticket_code,
        tournament_id=record.tournament_id,
        user_id=record.user_id,
        price=record.price,
        commission_rate=record.commission_rate,
        reserved_at=record.reserved_at,
        expiration_date=record.expiration_date,
        status=record.status,
        commission=record.commission,
        qr_payload=record.qr_payload,
        purchased_at=record.purchased_at,
        used_at=record.used_at,
        payment_reference=record.payment_reference,
        valid_until=record.valid_until,
        version=record.version,
    )


# =============================================================================
# Repositories
# =============================================================================


class SqlTournamentRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, tournament_id: str) -> Optional[Tournament]:
        if not _is_uuid(tournament_id):
            return None
        try:
            async with self._session_factory() as session:
                record = await session.get(TournamentRecord, tournament_id)
                return tournament_from_record(record) if record else None
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to load tournament", details={"tournamentId": tournament_id}
            ) from e

    async def add(self, tournament: Tournament) -> Tournament:
        stored = replace(tournament, version=1)
        try:
            async with session_scope(self._session_factory) as session:
                session.add(tournament_to_record(stored))
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to insert tournament",
                details={"tournamentId": tournament.tournament_id},
            ) from e
        return stored

    async def save(self, tournament: Tournament) -> Tournament:
        expected = tournament.version
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    update(TournamentRecord)
                    .where(
                        TournamentRecord.id == tournament.tournament_id,
                        TournamentRecord.version == expected,
                    )
                    .values(**tournament_values(tournament), version=expected + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConcurrentModificationError(
                        "Tournament", tournament.tournament_id, expected
                    )

                # Participants are owned by the row; rewrite them in the same transaction
                await session.execute(
                    delete(ParticipantRecord)
                    .where(ParticipantRecord.tournament_id == tournament.tournament_id)
                    .execution_options(synchronize_session=False)
                )
                if tournament.participants:
                    await session.execute(
                        insert(ParticipantRecord),
                        [participant_values(p) for p in tournament.participants],
                    )
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to save tournament",
                details={"tournamentId": tournament.tournament_id},
            ) from e
        return replace(tournament, version=expected + 1)

    async def list(
        self,
        status: Optional[TournamentStatus] = None,
        organizer_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Tournament]:
        query = select(TournamentRecord).order_by(TournamentRecord.created_at)
        if status is not None:
            query = query.where(TournamentRecord.status == status)
        if organizer_id is not None:
            query = query.where(TournamentRecord.organizer_id == organizer_id)
        if not include_deleted:
            query = query.where(TournamentRecord.deleted_at.is_(None))
        try:
            async with self._session_factory() as session:
                records = (await session.scalars(query)).all()
                return [tournament_from_record(r) for r in records]
        except SQLAlchemyError as e:
            raise StorageError("Failed to list tournaments") from e


class SqlTicketRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _fetch_one(self, query, what: str) -> Optional[Ticket]:
        try:
            async with self._session_factory() as session:
                record = await session.scalar(query)
                return ticket_from_record(record) if record else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load ticket by {what}") from e

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        if not _is_uuid(ticket_id):
            return None
        return await self._fetch_one(
            select(TicketRecord).where(TicketRecord.id == ticket_id), "id"
        )

    async def get_by_code(self, ticket_code: str) -> Optional[Ticket]:
        return await self._fetch_one(
            select(TicketRecord).where(TicketRecord.ticket_code == ticket_code), "code"
        )

    async def code_exists(self, ticket_code: str) -> bool:
        try:
            async with self._session_factory() as session:
                found = await session.scalar(
                    select(TicketRecord.id)
                    .where(TicketRecord.ticket_code == ticket_code)
                    .limit(1)
                )
                return found is not None
        except SQLAlchemyError as e:
            raise StorageError("Failed to check ticket code") from e

    async def add(self, ticket: Ticket) -> Ticket:
        stored = replace(ticket, version=1)
        try:
            async with session_scope(self._session_factory) as session:
                session.add(ticket_to_record(stored))
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to insert ticket", details={"ticketId": ticket.ticket_id}
            ) from e
        return stored

    async def save(self, ticket: Ticket) -> Ticket:
        expected = ticket.version
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    update(TicketRecord)
                    .where(
                        TicketRecord.id == ticket.ticket_id,
                        TicketRecord.version == expected,
                    )
                    .values(**ticket_values(ticket), version=expected + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConcurrentModificationError("Ticket", ticket.ticket_id, expected)
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to save ticket", details={"ticketId": ticket.ticket_id}
            ) from e
        return replace(ticket, version=expected + 1)

    async def list(
        self,
        tournament_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[TicketStatus] = None,
    ) -> List[Ticket]:
        query = select(TicketRecord).order_by(TicketRecord.reserved_at)
        if tournament_id is not None:
            if not _is_uuid(tournament_id):
                return []
            query = query.where(TicketRecord.tournament_id == tournament_id)
        if user_id is not None:
            query = query.where(TicketRecord.user_id == user_id)
        if status is not None:
            query = query.where(TicketRecord.status == status)
        return await self._fetch_many(query)

    async def list_expirable(self, now: datetime, limit: int) -> List[Ticket]:
        query = (
            select(TicketRecord)
            .where(
                TicketRecord.status.in_([TicketStatus.RESERVED, TicketStatus.PAID]),
                TicketRecord.expiration_date <= now,
            )
            .order_by(TicketRecord.expiration_date)
            .limit(limit)
        )
        return await self._fetch_many(query)

    async def _fetch_many(self, query) -> List[Ticket]:
        try:
            async with self._session_factory() as session:
                records = (await session.scalars(query)).all()
                return [ticket_from_record(r) for r in records]
        except SQLAlchemyError as e:
            raise StorageError("Failed to list tickets") from e
