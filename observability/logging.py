"""Structured logging setup shared by the API and the celery worker."""

from __future__ import annotations

import json
import logging
from functools import partial

import structlog

get_logger = structlog.get_logger

_configured = False


def configure_logging(debug: bool = False) -> None:
    """Configure stdlib logging and structlog to emit one JSON object per line.

    Calling it again only adjusts the root level.
    """

    global _configured
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger().setLevel(level)
    if _configured:
        return
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(
                serializer=partial(json.dumps, ensure_ascii=False, default=str)
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True
