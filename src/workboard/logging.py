"""Structured logging configuration for Workboard.

structlog sits on top of the stdlib logging tree so that library loggers
(SQLAlchemy, uvicorn, httpx) and our own events share one handler and one
output format. Request middleware sets a correlation ID and the auth
dependency binds the acting user; both are attached to every event.

Log calls may pass UUIDs and enum members directly; they are rendered as
plain strings so JSON output stays readable.

Example usage:
    >>> from workboard.config import LoggingConfig
    >>> from workboard.logging import setup_logging, get_logger, bind_caller_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="json"))
    >>> logger = get_logger(__name__)
    >>> bind_caller_context(user_id="3f1c...", role="MANAGER")
    >>> logger.info("card_moved", card_id="...", target_list_id="...")
"""

from __future__ import annotations

import contextvars
import enum
import logging
import logging.handlers
import sys
import uuid
from typing import Any

import structlog

from workboard.config import LoggingConfig

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Chatty at INFO; only their warnings are kept.
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "uvicorn.access")


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor copying the request correlation ID into the event."""
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def render_identifiers(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Render UUID and enum values as strings."""
    for key, value in event_dict.items():
        if isinstance(value, uuid.UUID):
            event_dict[key] = str(value)
        elif isinstance(value, enum.Enum):
            event_dict[key] = value.value
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    """Set correlation ID for current context."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get current correlation ID from context."""
    return _correlation_id.get()


def bind_caller_context(user_id: str, role: str) -> None:
    """Bind the acting user to all subsequent logs in this context.

    Args:
        user_id: Identifier of the authenticated caller
        role: Caller's platform role
    """
    structlog.contextvars.bind_contextvars(caller_id=user_id, caller_role=role)


def _build_handler(config: LoggingConfig) -> logging.Handler:
    if config.file is None:
        return logging.StreamHandler(sys.stdout)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * 1024 * 1024,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def setup_logging(config: LoggingConfig) -> None:
    """Route structlog through a single stdlib handler on the root logger.

    Safe to call more than once; existing root handlers are replaced.
    Vietnamese text is kept as-is in JSON output rather than escaped.
    """
    log_level = getattr(logging, config.level)

    handler = _build_handler(config)
    handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    renderer: Any
    if config.format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            render_identifiers,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)
