"""
Ticket Data Models.

A ticket is its own aggregate: it references its tournament and user by id
and keeps a snapshot of the price, commission rate and usage deadline taken
at reservation, so later tournament edits never reach issued tickets.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from torneo.clock import require_aware
from torneo.commission import ZERO, calculate_commission, to_money
from torneo.utils.errors import (
    InvalidArgumentError,
    InvalidStateError,
    InvalidTransitionError,
    ReservationExpiredError,
    TicketExpiredError,
)

TICKET_CODE_MAX_LENGTH = 50
PAYMENT_REFERENCE_MAX_LENGTH = 100


class TicketStatus(str, Enum):
    """Ticket lifecycle states."""

    RESERVED = "reserved"
    PAID = "paid"
    USED = "used"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not TICKET_TRANSITIONS[self]

    @property
    def is_live(self) -> bool:
        """Still able to expire: reserved or paid-but-unused."""
        return self in (TicketStatus.RESERVED, TicketStatus.PAID)

    def can_transition_to(self, target: "TicketStatus") -> bool:
        return target in TICKET_TRANSITIONS[self]


# PAID -> EXPIRED is taken only by the expiration sweep.
TICKET_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.RESERVED: frozenset(
        {TicketStatus.PAID, TicketStatus.EXPIRED, TicketStatus.CANCELLED}
    ),
    TicketStatus.PAID: frozenset(
        {TicketStatus.USED, TicketStatus.EXPIRED, TicketStatus.CANCELLED}
    ),
    TicketStatus.USED: frozenset(),
    TicketStatus.EXPIRED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class Ticket:
    """
    Ticket aggregate - immutable.

    `commission_rate` is the rate snapshotted at reservation; `commission`
    stays zero until payment computes it from that rate.
    """

    ticket_id: str
    ticket_code: str
    tournament_id: str
    user_id: str
    price: Decimal
    commission_rate: Decimal
    reserved_at: datetime
    expiration_date: datetime
    status: TicketStatus = TicketStatus.RESERVED
    commission: Decimal = ZERO
    qr_payload: Optional[str] = None
    purchased_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    payment_reference: Optional[str] = None

    # Tournament end at reservation time; paid tickets stay usable until then
    valid_until: Optional[datetime] = None

    version: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_money(self.price))
        object.__setattr__(self, "commission", to_money(self.commission))
        object.__setattr__(self, "commission_rate", Decimal(self.commission_rate))

        if not self.ticket_code or len(self.ticket_code) > TICKET_CODE_MAX_LENGTH:
            raise InvalidArgumentError(
                "ticket_code must be 1 to 50 characters",
                details={"field": "ticket_code"},
            )
        if not self.tournament_id or not self.user_id:
            raise InvalidArgumentError("tournament_id and user_id are required")
        if self.price < 0 or self.commission < 0:
            raise InvalidArgumentError("Amounts must not be negative")
        if not 0 <= self.commission_rate <= 1:
            raise InvalidArgumentError(
                "commission_rate must be between 0 and 1",
                details={"commission_rate": str(self.commission_rate)},
            )
        require_aware(self.reserved_at, "reserved_at")
        require_aware(self.expiration_date, "expiration_date")
        require_aware(self.valid_until, "valid_until")
        if self.expiration_date <= self.reserved_at:
            raise InvalidArgumentError("expiration_date must be after reserved_at")
        if (
            self.payment_reference is not None
            and len(self.payment_reference) > PAYMENT_REFERENCE_MAX_LENGTH
        ):
            raise InvalidArgumentError(
                "payment_reference must be at most 100 characters",
                details={"field": "payment_reference"},
            )

    @classmethod
    def reserve(
        cls,
        ticket_id: str,
        ticket_code: str,
        tournament_id: str,
        user_id: str,
        price: Decimal,
        commission_rate: Decimal,
        ttl: timedelta,
        now: datetime,
        valid_until: Optional[datetime] = None,
    ) -> "Ticket":
        """Create a RESERVED ticket that lapses at `now + ttl`."""
        if ttl <= timedelta(0):
            raise InvalidArgumentError(
                "Reservation ttl must be positive", details={"ttl": str(ttl)}
            )
        return cls(
            ticket_id=ticket_id,
            ticket_code=ticket_code,
            tournament_id=tournament_id,
            user_id=user_id,
            price=price,
            commission_rate=commission_rate,
            reserved_at=now,
            expiration_date=now + ttl,
            valid_until=valid_until,
        )

    # =========================================================================
    # Derived values
    # =========================================================================

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expiration_date

    def is_expirable(self, now: datetime) -> bool:
        """True when the sweep should move this ticket to EXPIRED."""
        return self.status.is_live and self.is_expired(now)

    def is_valid_for_use(self, now: datetime) -> bool:
        return self.status is TicketStatus.PAID and not self.is_expired(now)

    @property
    def can_be_refunded(self) -> bool:
        return self.status is TicketStatus.PAID and self.used_at is None

    @property
    def net_amount(self) -> Decimal:
        return self.price - self.commission

    # =========================================================================
    # Transitions
    # =========================================================================

    def _guard(self, target: TicketStatus) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError("ticket", self.status.value, target.value)

    def with_qr_payload(self, qr_payload: str) -> "Ticket":
        return replace(self, qr_payload=qr_payload)

    def mark_paid(
        self, now: datetime, payment_reference: Optional[str] = None
    ) -> "Ticket":
        """Settle the reservation and fix the commission.

        Raises:
            ReservationExpiredError: The reservation lapsed (by status or clock)
            InvalidTransitionError: The ticket is not RESERVED
        """
        if self.status is TicketStatus.EXPIRED:
            raise ReservationExpiredError(self.ticket_id)
        self._guard(TicketStatus.PAID)
        if self.is_expired(now):
            raise ReservationExpiredError(self.ticket_id)

        expiration = self.expiration_date
        if self.valid_until is not None and self.valid_until > expiration:
            expiration = self.valid_until

        return replace(
            self,
            status=TicketStatus.PAID,
            commission=calculate_commission(self.price, self.commission_rate),
            purchased_at=now,
            payment_reference=payment_reference,
            expiration_date=expiration,
        )

    def use(self, now: datetime) -> "Ticket":
        """Redeem a paid ticket once.

        Raises:
            TicketExpiredError: The ticket lapsed (by status or clock)
            InvalidTransitionError: The ticket is not PAID
        """
        if self.status is TicketStatus.EXPIRED:
            raise TicketExpiredError(self.ticket_id)
        self._guard(TicketStatus.USED)
        if self.is_expired(now):
            raise TicketExpiredError(self.ticket_id)
        return replace(self, status=TicketStatus.USED, used_at=now)

    def cancel(self) -> "Ticket":
        self._guard(TicketStatus.CANCELLED)
        return replace(self, status=TicketStatus.CANCELLED)

    def expire(self, now: datetime) -> "Ticket":
        self._guard(TicketStatus.EXPIRED)
        if not self.is_expired(now):
            raise InvalidStateError(
                "expire before its deadline", self.status.value, entity="ticket"
            )
        return replace(self, status=TicketStatus.EXPIRED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "ticket_code": self.ticket_code,
            "tournament_id": self.tournament_id,
            "user_id": self.user_id,
            "status": self.status.value,
            "price": str(self.price),
            "commission": str(self.commission),
            "commission_rate": str(self.commission_rate),
            "net_amount": str(self.net_amount),
            "reserved_at": self.reserved_at.isoformat(),
            "expiration_date": self.expiration_date.isoformat(),
            "purchased_at": self.purchased_at.isoformat() if self.purchased_at else None,
            "used_at": self.used_at.isoformat() if self.used_at else None,
            "version": self.version,
        }
