"""Structured logging setup.

Library modules only call ``structlog.get_logger(__name__)``; entry points
call configure_logging() once. Output goes to stderr so stdout stays clean
for JSON emitted by the CLI.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(level: str = "warning", json: bool = False) -> None:
    """Route structlog through stdlib logging at *level*.

    Args:
        level: Standard level name (debug, info, warning, error, critical).
        json: Render events as JSON lines instead of the console format.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    # No-op when the host already installed root handlers; the level still applies.
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric)
    logging.getLogger().setLevel(numeric)

    renderer = (
        structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
