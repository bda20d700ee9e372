"""Tests for the error hierarchy: codes, details and recoverability."""

import pytest

from torneo.utils.errors import (
    AggregateNotFoundError,
    AlreadyRegisteredError,
    CapacityExceededError,
    ConcurrentModificationError,
    ErrorCode,
    IncompleteConfigurationError,
    InsufficientParticipantsError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTransitionError,
    RegistrationClosedError,
    RegistrationWindowClosedError,
    ReservationExpiredError,
    StorageError,
    TicketExpiredError,
    TorneoError,
)


class TestErrorCodes:
    @pytest.mark.parametrize(
        "error,code",
        [
            (InvalidArgumentError("bad"), ErrorCode.INVALID_ARGUMENT),
            (AlreadyRegisteredError("t", "u"), ErrorCode.ALREADY_REGISTERED),
            (InvalidTransitionError("tournament", "draft", "finished"), ErrorCode.INVALID_TRANSITION),
            (InvalidStateError("edit", "published"), ErrorCode.INVALID_STATE),
            (IncompleteConfigurationError(["game_id"]), ErrorCode.INCOMPLETE_CONFIGURATION),
            (InsufficientParticipantsError(1, 2), ErrorCode.INSUFFICIENT_PARTICIPANTS),
            (RegistrationClosedError("t", "draft"), ErrorCode.REGISTRATION_CLOSED),
            (RegistrationWindowClosedError("t"), ErrorCode.REGISTRATION_WINDOW_CLOSED),
            (CapacityExceededError("t", 8), ErrorCode.CAPACITY_EXCEEDED),
            (ReservationExpiredError("k"), ErrorCode.RESERVATION_EXPIRED),
            (TicketExpiredError("k"), ErrorCode.TICKET_EXPIRED),
            (ConcurrentModificationError("Ticket", "k", 2), ErrorCode.CONCURRENT_MODIFICATION),
            (AggregateNotFoundError("Ticket", "k"), ErrorCode.NOT_FOUND),
            (StorageError("down"), ErrorCode.STORAGE_ERROR),
        ],
    )
    def test_code(self, error, code):
        assert isinstance(error, TorneoError)
        assert error.code == code.value

    def test_already_registered_is_invalid_argument(self):
        """Callers catching bad input also catch duplicate registrations."""
        error = AlreadyRegisteredError("t-1", "user-1")
        assert isinstance(error, InvalidArgumentError)
        assert error.details == {"tournamentId": "t-1", "userId": "user-1"}


class TestRecoverability:
    def test_business_errors_are_recoverable(self):
        assert CapacityExceededError("t", 8).recoverable
        assert ConcurrentModificationError("Tournament", "t", 1).recoverable

    def test_infrastructure_errors_are_not(self):
        assert not StorageError("down").recoverable
        assert not AggregateNotFoundError("Tournament", "t").recoverable


class TestSerialization:
    def test_to_dict(self):
        error = CapacityExceededError("t-1", 16)
        assert error.to_dict() == {
            "errorCode": "CAPACITY_EXCEEDED",
            "errorMessage": "Tournament is full (16 participants)",
            "details": {"tournamentId": "t-1", "maxParticipants": 16},
            "recoverable": True,
        }

    def test_messages(self):
        assert str(InvalidTransitionError("ticket", "used", "cancelled")) == (
            "Cannot move ticket from used to cancelled"
        )
        assert str(InvalidStateError("expire before its deadline", "reserved", entity="ticket")) == (
            "Cannot expire before its deadline while ticket is reserved"
        )
        assert str(IncompleteConfigurationError(["name", "game_id"])) == (
            "Tournament is missing required fields: name, game_id"
        )

    def test_default_details(self):
        assert InvalidArgumentError("bad").details == {}
