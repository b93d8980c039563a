"""Structured logging for Shipline.

Events are emitted through structlog and routed by the stdlib root logger,
either to stderr or to a size-rotated file. Every event carries the
identity of the run (action, branch, commit) once ``bind_run_context`` has
been called.

Example usage:
    >>> from shipline.config import LoggingConfig
    >>> from shipline.logging import setup_logging, get_logger, bind_run_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="console"))
    >>> bind_run_context(action="deploy", branch="production", commit="a1b2c3")
    >>> get_logger(__name__).info("stage_started", stage="build")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys

import structlog

from shipline.config import LoggingConfig

_RUN_CONTEXT_KEYS = ("action", "branch", "commit")


def bind_run_context(action: str, branch: str, commit: str) -> None:
    """Attach the run identity to every event logged after this call.

    Args:
        action: CLI action being executed
        branch: Checked-out branch name
        commit: Commit identifier the run is building
    """
    structlog.contextvars.bind_contextvars(action=action, branch=branch, commit=commit)


def clear_run_context() -> None:
    """Remove any run context bound by ``bind_run_context``."""
    structlog.contextvars.unbind_contextvars(*_RUN_CONTEXT_KEYS)


def _make_handler(config: LoggingConfig) -> logging.Handler:
    if config.file is None:
        # stdout belongs to the test command.
        return logging.StreamHandler(sys.stderr)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * 1024 * 1024,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def _make_renderer(config: LoggingConfig) -> structlog.types.Processor:
    if config.format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(config: LoggingConfig) -> None:
    """Route structlog events through a single root handler.

    Replaces any handlers already on the root logger, so calling this again
    reconfigures rather than duplicates output.

    Args:
        config: Logging section of PipelineConfig
    """
    level = logging.getLevelName(config.level)

    handler = _make_handler(config)
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _make_renderer(config),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)
