"""Structured logging for the deal engine, built on structlog.

Development gets colored console output; staging and production emit one
JSON object per line. Request ids bound by the API middleware (and contract
or payment ids bound by the sweeper) are merged into every entry through
structlog's contextvars support.

Usage:
    from wastex.logging_config import setup_logging, get_logger
    setup_logging(log_level="INFO", json_logs=False)
    logger = get_logger(__name__)
    logger.info("contract.signed", contract_id="...", role="seller")
"""

from __future__ import annotations

import logging
import sys

import structlog

# Chatty libraries that would otherwise drown the lifecycle events.
_QUIET_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "httpx",
    "httpcore",
    "web3.providers",
    "web3.manager",
    "aiosqlite",
)


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Route stdlib and structlog records through one ProcessorFormatter.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ...).
        json_logs: Render JSON instead of the colored console format.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
