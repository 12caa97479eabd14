"""Logging setup.

stdlib logging carries the level and handlers; structlog renders the events.
Modules log through ``structlog.get_logger(__name__)`` with keyword context.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure stdlib logging and structlog once per process.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        fmt: ``console`` for human output, ``json`` for log shipping
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    try:
        logging.basicConfig(
            level=log_level,
            format="%(message)s",
            stream=sys.stdout,
        )
    except Exception:  # pragma: no cover
        logging.basicConfig(level=logging.INFO)

    # uvicorn installs its own handlers; keep its level in step with ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(log_level)

    renderer: structlog.types.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
