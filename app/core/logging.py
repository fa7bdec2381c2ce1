from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def level_from_name(name: str | None) -> int:
    return getattr(logging, (name or "INFO").upper(), logging.INFO)


def configure_logging(level: int = logging.INFO, *, json_output: bool = True) -> None:
    """JSON lines on stdout for the API and workers; a console renderer on stderr for the CLI."""
    logging.basicConfig(format="%(message)s", level=level)
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stdout if json_output else sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    # Lazy proxy: module-level loggers pick up whatever configure_logging set before first use.
    return structlog.get_logger(service="creative-ingest", **initial_values)


__all__ = ["configure_logging", "get_logger", "level_from_name"]
