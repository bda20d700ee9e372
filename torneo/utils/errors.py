"""Exception classes for tournament and ticket operations.

Every error carries a code for programmatic handling, a user-facing message
and a recoverable flag. Recoverable errors leave the aggregate untouched, so
the caller may retry, correct its input or surface the message.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Input / lookup
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    NOT_FOUND = "NOT_FOUND"

    # State machine
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_STATE = "INVALID_STATE"
    INCOMPLETE_CONFIGURATION = "INCOMPLETE_CONFIGURATION"
    INSUFFICIENT_PARTICIPANTS = "INSUFFICIENT_PARTICIPANTS"

    # Registration
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    REGISTRATION_WINDOW_CLOSED = "REGISTRATION_WINDOW_CLOSED"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"

    # Tickets
    RESERVATION_EXPIRED = "RESERVATION_EXPIRED"
    TICKET_EXPIRED = "TICKET_EXPIRED"

    # Concurrency / infrastructure
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    STORAGE_ERROR = "STORAGE_ERROR"


class TorneoError(Exception):
    """Base exception for tournament/ticket errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
        recoverable: Whether the caller may retry or correct the request
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class InvalidArgumentError(TorneoError):
    """Raised when construction or update input breaks an invariant."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_ARGUMENT,
            message=message,
            details=details,
        )


class AlreadyRegisteredError(InvalidArgumentError):
    """Raised when a user already holds a participant record."""

    def __init__(self, tournament_id: str, user_id: str):
        super().__init__(
            message="User is already registered in this tournament",
            details={"tournamentId": tournament_id, "userId": user_id},
        )
        self.code = ErrorCode.ALREADY_REGISTERED.value


class InvalidTransitionError(TorneoError):
    """Raised when a state machine transition is not allowed."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot move {entity} from {current} to {target}",
            details={"entity": entity, "current": current, "target": target},
        )


class InvalidStateError(TorneoError):
    """Raised when an action is attempted in a state that forbids it."""

    def __init__(self, action: str, status: str, entity: str = "tournament"):
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=f"Cannot {action} while {entity} is {status}",
            details={"action": action, "status": status, "entity": entity},
        )


class IncompleteConfigurationError(TorneoError):
    """Raised when publishing a tournament with required fields missing."""

    def __init__(self, missing: list[str]):
        super().__init__(
            code=ErrorCode.INCOMPLETE_CONFIGURATION,
            message=f"Tournament is missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )


class InsufficientParticipantsError(TorneoError):
    """Raised when starting a tournament without enough participants."""

    def __init__(self, current: int, required: int = 2):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_PARTICIPANTS,
            message=f"Not enough participants: {current}/{required}",
            details={"current": current, "required": required},
        )


class RegistrationClosedError(TorneoError):
    """Raised when the tournament status does not accept registrations."""

    def __init__(self, tournament_id: str, status: str):
        super().__init__(
            code=ErrorCode.REGISTRATION_CLOSED,
            message=f"Tournament is not accepting registrations ({status})",
            details={"tournamentId": tournament_id, "status": status},
        )


class RegistrationWindowClosedError(TorneoError):
    """Raised when now is outside the registration window."""

    def __init__(self, tournament_id: str):
        super().__init__(
            code=ErrorCode.REGISTRATION_WINDOW_CLOSED,
            message="Registration period is not open",
            details={"tournamentId": tournament_id},
        )


class CapacityExceededError(TorneoError):
    """Raised when the tournament has no free slot left."""

    def __init__(self, tournament_id: str, max_participants: int):
        super().__init__(
            code=ErrorCode.CAPACITY_EXCEEDED,
            message=f"Tournament is full ({max_participants} participants)",
            details={"tournamentId": tournament_id, "maxParticipants": max_participants},
        )


class ReservationExpiredError(TorneoError):
    """Raised when paying a reservation past its deadline."""

    def __init__(self, ticket_id: str):
        super().__init__(
            code=ErrorCode.RESERVATION_EXPIRED,
            message="Ticket reservation has expired",
            details={"ticketId": ticket_id},
        )


class TicketExpiredError(TorneoError):
    """Raised when using a ticket past its deadline."""

    def __init__(self, ticket_id: str):
        super().__init__(
            code=ErrorCode.TICKET_EXPIRED,
            message="Ticket has expired",
            details={"ticketId": ticket_id},
        )


class ConcurrentModificationError(TorneoError):
    """Raised when a save loses the version check against a concurrent writer."""

    def __init__(self, aggregate: str, aggregate_id: str, expected_version: int):
        super().__init__(
            code=ErrorCode.CONCURRENT_MODIFICATION,
            message=f"{aggregate} {aggregate_id} was modified concurrently",
            details={
                "aggregate": aggregate,
                "aggregateId": aggregate_id,
                "expectedVersion": expected_version,
            },
        )


class AggregateNotFoundError(TorneoError):
    """Raised when an aggregate id is unknown or soft-deleted."""

    def __init__(self, aggregate: str, aggregate_id: str):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{aggregate} not found: {aggregate_id}",
            details={"aggregate": aggregate, "aggregateId": aggregate_id},
            recoverable=False,
        )


class StorageError(TorneoError):
    """Infrastructure failure surfaced by a persistence collaborator."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.STORAGE_ERROR,
            message=message,
            details=details,
            recoverable=False,
        )
