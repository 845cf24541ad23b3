from __future__ import annotations

import logging
import os

import structlog


def configure_logging() -> None:
    """Configure structlog once per process.

    MESA_LOG_LEVEL picks the threshold, MESA_LOG_JSON=false switches to the console renderer.
    """

    level_name = os.getenv("MESA_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown MESA_LOG_LEVEL={level_name!r}.")

    as_json = os.getenv("MESA_LOG_JSON", "true").strip().lower() in {"1", "true", "yes", "y"}
    renderer = structlog.processors.JSONRenderer() if as_json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
