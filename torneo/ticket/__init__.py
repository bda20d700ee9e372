"""Ticket aggregate, reservation/payment service and expiration sweep."""

from .codes import TicketCodeGenerator, build_qr_payload, is_valid_qr_payload
from .models import Ticket, TicketStatus
from .service import TicketService, TicketStats, TicketValidation
from .sweeper import ExpirationSweeper, SweepResult

__all__ = [
    "Ticket",
    "TicketStatus",
    "TicketCodeGenerator",
    "build_qr_payload",
    "is_valid_qr_payload",
    "TicketService",
    "TicketStats",
    "TicketValidation",
    "ExpirationSweeper",
    "SweepResult",
]
