"""Structured logging setup shared by the client and its HTTP surface."""

from __future__ import annotations

import logging
import sys

import structlog

from linkup.common.settings import get_settings


def configure_logging(level: str | None = None) -> None:
    """Install the structlog processor chain and the stdlib root handler.

    Args:
        level: Log level name. Defaults to ``Settings.log_level``.
    """
    level_name = level or get_settings().log_level

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
