"""Structured logging setup."""

from __future__ import annotations

import logging

import structlog


def _log_level(name: str) -> int:
    """Resolve a level name such as "info" or "WARNING"; unknown names fall back to INFO."""
    return getattr(logging, name.upper(), logging.INFO)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the specified level and format."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_log_level(level)),
    )
