"""Structured logging for the processor.

Log lines emitted while a broker message is handled carry that message's
key and schema; requests to the HTTP endpoints carry their request id. Each
context is bound for the duration of a ``with`` block and restored on exit,
so the two never leak into each other.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.types import EventDict, Processor, WrappedLogger

    from tripupdate_processor.services.tripupdate.events import InboundMessage

from tripupdate_processor.config import get_settings


def summarize_bytes(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Replace raw payload bytes with their size so protobuf never hits the log."""
    for name, value in event_dict.items():
        if isinstance(value, (bytes, bytearray)):
            event_dict[name] = f"<{len(value)} bytes>"
    return event_dict


def setup_logging() -> None:
    """Route structlog and stdlib logging through one renderer.

    JSON lines unless running in development, where the console renderer is
    easier to read; ``LOG_JSON`` overrides either way.
    """
    settings = get_settings()
    use_json = settings.log_json
    if use_json is None:
        use_json = settings.environment != "development"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        summarize_bytes,
    ]

    renderer: Processor
    if use_json:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    # The NATS client logs every reconnect attempt at INFO
    logging.getLogger("nats").setLevel(logging.DEBUG if settings.debug else logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.stdlib.get_logger(name)


@contextmanager
def message_context(message: InboundMessage) -> Iterator[None]:
    """Bind a broker message's key, schema and event time while it is handled."""
    with structlog.contextvars.bound_contextvars(
        key=message.key,
        schema=message.schema,
        event_time_ms=message.event_time_ms,
    ):
        yield


@contextmanager
def request_context(**fields: Any) -> Iterator[None]:
    """Bind HTTP request fields (request id, path) for one request."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield
