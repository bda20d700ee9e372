"""Structured logging for the tournament engine.

Every line is a structlog event dict. Service and sweeper calls run inside
`aggregate_context`, so the tournament/ticket they touch is stamped on every
line logged underneath, including tenacity retry lines emitted through the
stdlib bridge.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

APP_NAME = "torneo"

# Third-party loggers and the lowest level they may emit at
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "asyncio": logging.WARNING,
    "redis": logging.WARNING,
    "celery": logging.INFO,
}


def _app_stamp(app_env: str) -> Processor:
    def stamp(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", APP_NAME)
        event_dict.setdefault("env", app_env)
        return event_dict

    return stamp


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Install the structlog pipeline and route stdlib logging through it.

    JSON is rendered in production (or when `json_logs` is set); a console
    renderer is used everywhere else.
    """
    use_json = json_logs or app_env == "production"

    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _app_stamp(app_env),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if use_json:
        shared.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        shared.append(structlog.dev.set_exc_info)
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper()))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind values for the duration of the block, then restore what was there."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


@contextmanager
def aggregate_context(
    tournament_id: Optional[str] = None,
    ticket_id: Optional[str] = None,
) -> Iterator[None]:
    """Stamp the tournament and/or ticket being worked on; unset ids are skipped."""
    values = {
        key: value
        for key, value in (("tournament_id", tournament_id), ("ticket_id", ticket_id))
        if value is not None
    }
    with log_context(**values):
        yield
