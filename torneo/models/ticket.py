"""Ticket record."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from torneo.models.base import Base, TimestampMixin, UUIDMixin
from torneo.ticket.models import TicketStatus


class TicketRecord(Base, UUIDMixin, TimestampMixin):
    """Persisted ticket.

    Price, commission rate and `valid_until` are snapshots taken from the
    tournament at reservation time.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_tickets_price"),
        CheckConstraint("commission >= 0", name="ck_tickets_commission"),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 1",
            name="ck_tickets_commission_rate",
        ),
        CheckConstraint(
            "status <> 'used' OR used_at IS NOT NULL", name="ck_tickets_used_at"
        ),
        # Sweep query: live tickets by deadline
        Index("ix_tickets_status_expiration", "status", "expiration_date"),
    )

    ticket_code: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    qr_payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[TicketStatus] = mapped_column(
        SQLEnum(
            TicketStatus,
            name="ticket_status",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=TicketStatus.RESERVED,
    )

    tournament_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("tournaments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    commission: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)

    reserved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expiration_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    valid_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    purchased_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<Ticket {self.ticket_code} ({self.status}, v{self.version})>"
