"""structlog configuration for applications embedding the decoder."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from pgwire_decoder.config.models import DecoderConfig, LogLevel


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    *,
    json: bool = False,
) -> None:
    """Configure structlog with level filtering and a console or JSON renderer."""
    processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    numeric_level = logging.getLevelName(str(level).upper())
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def configure_from(config: DecoderConfig) -> None:
    configure_logging(config.log_level, json=config.log_json)
