"""Shared fixtures: manual clock, test settings, in-memory stores and services."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from torneo.clock import ManualClock
from torneo.config import Settings
from torneo.events import InMemoryEventPublisher
from torneo.repositories.memory import (
    InMemoryTicketRepository,
    InMemoryTournamentRepository,
)
from torneo.ticket.service import TicketService
from torneo.tournament.models import Tournament, TournamentStatus, TournamentType
from torneo.tournament.service import TournamentService

# Registration window is BASE_TIME +/- 1 day; the event runs on days 2-3.
BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def get_test_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {"app_env": "test", "log_level": "WARNING"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(BASE_TIME)


@pytest.fixture
def test_settings() -> Settings:
    return get_test_settings()


@pytest.fixture
def settings_factory():
    return get_test_settings


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def tournament_repo() -> InMemoryTournamentRepository:
    return InMemoryTournamentRepository()


@pytest.fixture
def ticket_repo() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def tournament_service(tournament_repo, publisher, clock, test_settings):
    return TournamentService(
        repository=tournament_repo,
        publisher=publisher,
        clock=clock,
        settings=test_settings,
    )


@pytest.fixture
def ticket_service(ticket_repo, tournament_repo, publisher, clock, test_settings):
    return TicketService(
        tickets=ticket_repo,
        tournaments=tournament_repo,
        publisher=publisher,
        clock=clock,
        settings=test_settings,
    )


@pytest.fixture
def make_tournament():
    """Factory for a fully configured DRAFT tournament."""

    def _make(**overrides) -> Tournament:
        fields = {
            "tournament_id": str(uuid4()),
            "name": "Spring Cup",
            "organizer_id": "organizer-1",
            "max_participants": 8,
            "category_id": "category-fps",
            "game_id": "game-1",
            "registration_start": BASE_TIME - timedelta(days=1),
            "registration_end": BASE_TIME + timedelta(days=1),
            "start_date": BASE_TIME + timedelta(days=2),
            "end_date": BASE_TIME + timedelta(days=3),
            "created_at": BASE_TIME,
        }
        fields.update(overrides)
        return Tournament(**fields)

    return _make


@pytest.fixture
def make_paid_tournament(make_tournament):
    def _make(**overrides) -> Tournament:
        fields = {
            "tournament_type": TournamentType.PAID,
            "entry_fee": Decimal("20.00"),
            "commission_rate": Decimal("0.10"),
        }
        fields.update(overrides)
        return make_tournament(**fields)

    return _make


@pytest.fixture
def stored_published(tournament_repo, make_paid_tournament):
    """Store a PUBLISHED paid tournament and return it."""

    async def _store(**overrides) -> Tournament:
        tournament = make_paid_tournament(status=TournamentStatus.PUBLISHED, **overrides)
        return await tournament_repo.add(tournament)

    return _store
