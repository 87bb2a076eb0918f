"""Structured logging setup shared by the gateway, store and controller."""

import logging
import sys
from typing import Literal, TextIO

import structlog

from chips_tracker.config.settings import get_settings

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]

# httpx logs every request at INFO; the gateway already logs each operation.
_NOISY_LOGGERS = ("httpx", "httpcore")


def _event_processors() -> list[structlog.types.Processor]:
    """Processors applied to every event before rendering."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def _renderer(log_format: LogFormat, interactive: bool) -> list[structlog.types.Processor]:
    if log_format == "json":
        # Tracebacks become structured fields so a log shipper can index them.
        return [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return [
        structlog.dev.ConsoleRenderer(
            colors=interactive,
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


def configure_logging(
    level: LogLevel | None = None,
    format: LogFormat | None = None,
    stream: TextIO | None = None,
) -> None:
    """Route structlog through the stdlib root logger.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL``.
        format: ``json`` or ``console``. Defaults to ``LOG_FORMAT``.
        stream: Where records go. Colors are used only for stdout.
    """
    settings = get_settings()
    log_level: LogLevel = level or settings.log_level
    log_format: LogFormat = format or settings.log_format

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)

    quiet = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)

    structlog.configure(
        processors=_event_processors() + _renderer(log_format, interactive=stream is None),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
