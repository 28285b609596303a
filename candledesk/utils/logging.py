"""Structured logging setup with structlog and session IDs.

Supports two output modes:
- "json": Machine-readable JSON lines (for piping into log collectors)
- "console": Human-readable colored output (for the terminal)

The active session ID is injected via contextvars into every log entry,
so ticks and analysis requests can be traced back to one dashboard session.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog

_session_id: ContextVar[str] = ContextVar("session_id", default="")


def set_session_id(sid: str) -> None:
    """Set the session ID for the current context."""
    _session_id.set(sid)


def get_session_id() -> str:
    """Get the session ID for the current context."""
    return _session_id.get()


def _add_session_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    sid = get_session_id()
    if sid:
        event_dict["session_id"] = sid
    return event_dict


def setup_logging(level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog for the dashboard.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Output format - "json" or "console".
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_session_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structlog logger."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
