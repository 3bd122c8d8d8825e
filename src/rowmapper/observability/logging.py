"""
rowmapper.observability.logging

Structured logging configuration.

Responsibilities:
- Configure `structlog` for console output during development or JSON
  output for log aggregation.
- Provide a small wrapper for obtaining bound loggers.
"""

from __future__ import annotations

import logging
import sys

import structlog

from rowmapper.config import config


def configure_logging(*, level: str | None = None, json: bool | None = None) -> None:
    """
    Route structlog through the stdlib logging module at the given level.

    level and json default to config.log_level and config.log_json.
    """
    level = level or config.log_level
    json = config.log_json if json is None else json

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
