"""Diagnostics logging for serverlog itself, using structlog.

This is not the request logger handed to applications (see request_logger.py):
it carries the adapter's own debug output (hook registration, plugin setup),
with the current request id merged in from contextvars when there is one.
Records go through the stdlib "serverlog" logger to stderr, so they never mix
with request records written to stdout.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", pretty: bool = False) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    renderer = structlog.dev.ConsoleRenderer() if pretty else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str, **kwargs: Any) -> structlog.stdlib.BoundLogger:
    # stdlib-backed: nothing is emitted below WARNING until configure_logging runs
    logger = structlog.wrap_logger(logging.getLogger("serverlog"), wrapper_class=structlog.stdlib.BoundLogger)
    return logger.bind(component=component, **kwargs)
