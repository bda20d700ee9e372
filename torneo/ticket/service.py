"""Ticket Service.

Reserve, pay, use and cancel tickets. Each mutation is a version-checked
read-modify-write on the ticket alone; the tournament is only read, at
reservation, to take the price/rate/deadline snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from torneo.clock import Clock, SystemClock
from torneo.config import Settings, get_settings
from torneo.events import DomainEvent, DomainEventType, EventPublisher
from torneo.logging_config import aggregate_context, get_logger
from torneo.repositories.base import TicketRepository, TournamentRepository
from torneo.ticket.codes import (
    TicketCodeGenerator,
    build_qr_payload,
    is_valid_qr_payload,
)
from torneo.ticket.models import Ticket, TicketStatus
from torneo.tournament.models import TournamentType
from torneo.utils.errors import (
    AggregateNotFoundError,
    CapacityExceededError,
    ConcurrentModificationError,
    InvalidArgumentError,
    RegistrationClosedError,
    RegistrationWindowClosedError,
)
from torneo.utils.retry import retry_on_conflict

logger = get_logger(__name__)


@dataclass(frozen=True)
class TicketValidation:
    """Outcome of checking a ticket at the door."""

    valid: bool
    message: str
    ticket: Optional[Ticket] = None


@dataclass
class TicketStats:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    paid_revenue: Decimal = Decimal("0.00")
    commission_collected: Decimal = Decimal("0.00")


class TicketService:
    """Application service for the ticket aggregate."""

    def __init__(
        self,
        tickets: TicketRepository,
        tournaments: TournamentRepository,
        publisher: EventPublisher,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
        id_factory: Optional[Callable[[], str]] = None,
        code_generator: Optional[TicketCodeGenerator] = None,
    ) -> None:
        self.tickets = tickets
        self.tournaments = tournaments
        self.publisher = publisher
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self._new_id = id_factory or (lambda: str(uuid4()))
        self.code_generator = code_generator or TicketCodeGenerator(
            prefix=self.settings.ticket_code_prefix,
            length=self.settings.ticket_code_length,
            max_attempts=self.settings.ticket_code_max_attempts,
        )

    async def _publish(
        self,
        event_type: DomainEventType,
        ticket: Ticket,
        now: datetime,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        data = {
            "tournament_id": ticket.tournament_id,
            "user_id": ticket.user_id,
            "ticket_code": ticket.ticket_code,
            **(data or {}),
        }
        await self.publisher.publish(
            DomainEvent(
                event_type=event_type,
                aggregate_id=ticket.ticket_id,
                status=ticket.status.value,
                version=ticket.version,
                timestamp=now,
                data=data,
            )
        )
        logger.info(
            event_type.name.lower(),
            ticket_id=ticket.ticket_id,
            status=ticket.status.value,
            version=ticket.version,
            **data,
        )

    async def _apply(
        self,
        load: Callable[[], Awaitable[Ticket]],
        event_type: DomainEventType,
        mutate: Callable[[Ticket, datetime], Tuple[Ticket, Dict[str, Any]]],
    ) -> Ticket:
        async def attempt() -> Tuple[Ticket, Dict[str, Any], datetime]:
            now = self.clock.now()
            current = await load()
            with aggregate_context(
                tournament_id=current.tournament_id, ticket_id=current.ticket_id
            ):
                updated, data = mutate(current, now)
                try:
                    saved = await self.tickets.save(updated)
                except ConcurrentModificationError:
                    logger.warning(
                        "ticket_version_conflict",
                        version=current.version,
                        operation=event_type.name.lower(),
                    )
                    raise
            return saved, data, now

        saved, data, now = await retry_on_conflict(
            attempt, self.settings.conflict_retry_attempts
        )
        await self._publish(event_type, saved, now, data)
        return saved

    # =========================================================================
    # Commands
    # =========================================================================

    async def reserve(
        self,
        tournament_id: str,
        user_id: str,
        ttl: Optional[timedelta] = None,
    ) -> Ticket:
        """Hold a ticket for a paid tournament until `now + ttl`.

        Raises:
            AggregateNotFoundError: Unknown or deleted tournament
            InvalidArgumentError: Tournament is free, or ttl is not positive
            RegistrationClosedError: Tournament is not PUBLISHED
            RegistrationWindowClosedError: Outside the registration window
            CapacityExceededError: Tournament has no free slot
            StorageError: No unused ticket code could be allocated
        """
        now = self.clock.now()
        tournament = await self.tournaments.get(tournament_id)
        if tournament is None or tournament.is_deleted:
            raise AggregateNotFoundError("Tournament", tournament_id)
        if tournament.tournament_type is not TournamentType.PAID:
            raise InvalidArgumentError(
                "Tickets are only issued for paid tournaments",
                details={"tournamentId": tournament_id},
            )
        if not tournament.status.allows_registration:
            raise RegistrationClosedError(tournament_id, tournament.status.value)
        if not tournament.is_registration_open(now):
            raise RegistrationWindowClosedError(tournament_id)
        if not tournament.has_available_slots:
            raise CapacityExceededError(tournament_id, tournament.max_participants)

        if ttl is None:
            ttl = timedelta(minutes=self.settings.ticket_reservation_ttl_minutes)
        code = await self.code_generator.generate(self.tickets.code_exists)
        ticket = Ticket.reserve(
            ticket_id=self._new_id(),
            ticket_code=code,
            tournament_id=tournament_id,
            user_id=user_id,
            price=tournament.entry_fee,
            commission_rate=tournament.commission_rate,
            ttl=ttl,
            now=now,
            valid_until=tournament.end_date,
        )
        ticket = ticket.with_qr_payload(build_qr_payload(ticket))
        saved = await self.tickets.add(ticket)
        await self._publish(
            DomainEventType.TICKET_RESERVED,
            saved,
            now,
            {
                "price": str(saved.price),
                "expiration_date": saved.expiration_date.isoformat(),
            },
        )
        return saved

    async def mark_paid(
        self, ticket_id: str, payment_reference: Optional[str] = None
    ) -> Ticket:
        return await self._apply(
            lambda: self.get_ticket(ticket_id),
            DomainEventType.TICKET_PAID,
            lambda t, now: (
                t.mark_paid(now, payment_reference),
                {"payment_reference": payment_reference},
            ),
        )

    async def use(self, ticket_code: str) -> Ticket:
        return await self._apply(
            lambda: self.get_by_code(ticket_code),
            DomainEventType.TICKET_USED,
            lambda t, now: (t.use(now), {}),
        )

    async def cancel(self, ticket_id: str) -> Ticket:
        """Cancel a RESERVED or PAID ticket.

        A paid ticket's event carries `refund_required=True` for the payment
        collaborator; no money moves here.
        """
        return await self._apply(
            lambda: self.get_ticket(ticket_id),
            DomainEventType.TICKET_CANCELLED,
            lambda t, now: (
                t.cancel(),
                {
                    "refund_required": t.status is TicketStatus.PAID,
                    "refund_amount": str(t.price) if t.can_be_refunded else None,
                },
            ),
        )

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self.tickets.get(ticket_id)
        if ticket is None:
            raise AggregateNotFoundError("Ticket", ticket_id)
        return ticket

    async def get_by_code(self, ticket_code: str) -> Ticket:
        ticket = await self.tickets.get_by_code(ticket_code)
        if ticket is None:
            raise AggregateNotFoundError("Ticket", ticket_code)
        return ticket

    async def validate(self, ticket_code: str) -> TicketValidation:
        """Check whether a ticket may be used right now, without raising."""
        now = self.clock.now()
        ticket = await self.tickets.get_by_code(ticket_code)
        if ticket is None:
            return TicketValidation(False, "Ticket not found")
        if not is_valid_qr_payload(ticket.qr_payload):
            return TicketValidation(False, "Ticket QR code is unreadable", ticket)
        if ticket.is_valid_for_use(now):
            return TicketValidation(True, "Ticket is valid", ticket)
        if ticket.status is TicketStatus.USED:
            return TicketValidation(False, "Ticket has already been used", ticket)
        if ticket.status in (TicketStatus.PAID, TicketStatus.EXPIRED):
            return TicketValidation(False, "Ticket has expired", ticket)
        return TicketValidation(
            False, f"Ticket is not valid for use ({ticket.status.value})", ticket
        )

    async def list_user_tickets(self, user_id: str) -> List[Ticket]:
        return await self.tickets.list(user_id=user_id)

    async def list_tournament_tickets(
        self, tournament_id: str, status: Optional[TicketStatus] = None
    ) -> List[Ticket]:
        return await self.tickets.list(tournament_id=tournament_id, status=status)

    async def get_stats(self, tournament_id: Optional[str] = None) -> TicketStats:
        """Counts per status; revenue and commission over settled tickets."""
        stats = TicketStats(by_status={s.value: 0 for s in TicketStatus})
        for ticket in await self.tickets.list(tournament_id=tournament_id):
            stats.total += 1
            stats.by_status[ticket.status.value] += 1
            if ticket.status in (TicketStatus.PAID, TicketStatus.USED):
                stats.paid_revenue += ticket.price
                stats.commission_collected += ticket.commission
        return stats
