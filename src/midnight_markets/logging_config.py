"""structlog setup shared by the API, the MCP tools and the simulation.

Every ledger mutation is logged as one dotted event (``offer.accepted``,
``escrow.released``) with ids and amounts as keyword fields. Two context
layers are merged into each line:

    request_context(request_id)          bound per HTTP request
    operation_context(operation, actor)  bound per engine operation

so a payout line can be traced back to the request and caller behind it.

Usage:
    setup_logging(log_level="INFO", json_logs=True)
    logger = get_logger(__name__)
    logger.info("escrow.released", offer_id=101, seller_net=990)
"""

from __future__ import annotations

import enum
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE_NAME = "midnight-markets"

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx", "httpcore")


def _enum_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Render enum members (statuses, payout kinds) by value."""
    for key, value in event_dict.items():
        if isinstance(value, enum.Enum):
            event_dict[key] = value.value
    return event_dict


def _add_service(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _enum_values,
    ]
    if json_logs:
        processors += [_add_service, structlog.processors.format_exc_info]
    else:
        processors.append(structlog.processors.StackInfoRenderer())
    return processors


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Route structlog through stdlib logging with one stdout handler.

    Args:
        log_level: Standard level name; unknown names fall back to DEBUG.
        json_logs: JSON lines for production, colored console otherwise.
    """
    shared = _processors(json_logs)
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

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
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def request_context(request_id: str, **fields: Any) -> Iterator[None]:
    """Start a fresh log context for one HTTP request."""
    structlog.contextvars.clear_contextvars()
    with structlog.contextvars.bound_contextvars(request_id=request_id, **fields):
        yield


@contextmanager
def operation_context(operation: str, actor: str, **extra: Any) -> Iterator[None]:
    """Bind operation and actor to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(operation=operation, actor=actor, **extra):
        yield
