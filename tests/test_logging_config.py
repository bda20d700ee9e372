"""Logging configuration tests."""

import json
import logging

import pytest
import structlog

from torneo.logging_config import (
    aggregate_context,
    configure_logging,
    get_logger,
    log_context,
)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root.handlers[:] = handlers
    root.setLevel(level)


def json_lines(capsys):
    return [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]


class TestConfigureLogging:
    def test_production_renders_json(self, restore_logging, capsys):
        configure_logging(log_level="INFO", app_env="production")

        get_logger("torneo.test").info("ticket_paid", version=2)

        record = json_lines(capsys)[-1]
        assert record["event"] == "ticket_paid"
        assert record["version"] == 2
        assert record["level"] == "info"
        assert record["app"] == "torneo"
        assert record["env"] == "production"

    def test_level_filters(self, restore_logging, capsys):
        configure_logging(log_level="WARNING", json_logs=True)

        get_logger("torneo.test").info("hidden")
        get_logger("torneo.test").warning("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out

    def test_quiet_loggers(self, restore_logging):
        configure_logging(log_level="DEBUG", json_logs=True)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("redis").level == logging.WARNING


class TestAggregateContext:
    def test_ids_stamped_inside_block_only(self, restore_logging, capsys):
        configure_logging(json_logs=True)
        log = get_logger("torneo.test")

        with aggregate_context(tournament_id="t-1", ticket_id="ticket-1"):
            log.info("inside")
        log.info("outside")

        inside, outside = json_lines(capsys)[-2:]
        assert inside["tournament_id"] == "t-1"
        assert inside["ticket_id"] == "ticket-1"
        assert "ticket_id" not in outside
        assert "tournament_id" not in outside

    def test_unset_ids_are_not_bound(self):
        with aggregate_context(tournament_id="t-1"):
            assert structlog.contextvars.get_contextvars() == {"tournament_id": "t-1"}

    def test_stdlib_lines_carry_context(self, restore_logging, capsys):
        configure_logging(json_logs=True)

        with aggregate_context(ticket_id="ticket-9"):
            logging.getLogger("torneo.utils.retry").warning("Retrying in %s", "0.1s")

        record = json_lines(capsys)[-1]
        assert record["event"] == "Retrying in 0.1s"
        assert record["ticket_id"] == "ticket-9"

    def test_nested_blocks_restore_outer_values(self):
        with log_context(task_id="sweep-1"):
            with aggregate_context(ticket_id="a"):
                with aggregate_context(ticket_id="b"):
                    assert structlog.contextvars.get_contextvars()["ticket_id"] == "b"
                assert structlog.contextvars.get_contextvars() == {
                    "task_id": "sweep-1",
                    "ticket_id": "a",
                }
        assert structlog.contextvars.get_contextvars() == {}
