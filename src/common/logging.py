"""Structured logging configuration (structlog)."""

from __future__ import annotations

import logging
from pathlib import Path

import structlog


def configure_structlog(level: int = logging.INFO, *, cache: bool = True) -> None:
    """Configure structlog for human-readable console output.

    Call once at process startup. Pass ``cache=False`` when stdout may be
    swapped underneath already created loggers (test capture).
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=cache,
    )


def get_json_file_logger(log_path: Path) -> structlog.BoundLogger:
    """Return a structlog logger that appends JSON lines to *log_path*.

    The logger is backed by its own stdlib FileHandler and does not go
    through the console configuration, so protocol events of a run end up
    in one machine-readable file next to the run metadata.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(str(log_path), mode="a")
    file_handler.setLevel(logging.DEBUG)

    stdlib_logger = logging.getLogger(_file_logger_name(log_path))
    stdlib_logger.handlers = [file_handler]
    stdlib_logger.setLevel(logging.DEBUG)
    stdlib_logger.propagate = False

    return structlog.wrap_logger(
        stdlib_logger,
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
    )


def _file_logger_name(log_path: Path) -> str:
    return f"loadfleet.run.{log_path}"


def close_json_file_logger(log_path: Path) -> None:
    """Close and detach the file handler opened by ``get_json_file_logger``."""
    stdlib_logger = logging.getLogger(_file_logger_name(log_path))
    for handler in stdlib_logger.handlers:
        handler.close()
    stdlib_logger.handlers = []
