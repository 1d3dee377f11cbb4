#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging for the cache service with:
- Thread ID correlation for request tracing
- Stage identifiers for cache execution flow
- JSON formatting for log aggregation
- Redaction of e-mail addresses and phone numbers, which appear in
  user lookup keys such as ``user:email:<address>``
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from dormcache.core.config.settings import get_settings

# Context variable for thread ID
thread_id_ctx: ContextVar[str | None] = ContextVar("thread_id", default=None)

_EMAIL_RE = re.compile(r"\b[\w.+-]+@[\w.-]+\.\w+\b")
_PHONE_RE = re.compile(r"\b1[3-9]\d{9}\b|\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")

# Event fields that may carry a cache key
_KEY_FIELDS = ("key", "cache_key", "full_key", "pattern")


def add_thread_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add thread ID to log event from context variable.

    STAGE-L.1: Thread ID injection
    """
    thread_id = thread_id_ctx.get()
    if thread_id:
        event_dict["thread_id"] = thread_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def _redact(text: str) -> str:
    text = _EMAIL_RE.sub("[EMAIL]", text)
    return _PHONE_RE.sub("[PHONE]", text)


def redact_pii(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact PII from the message and from key-bearing fields.

    STAGE-L.3: PII redaction

    Patterns redacted:
    - Email addresses → [EMAIL]
    - Phone numbers → [PHONE]
    """
    message = event_dict.get("event", "")
    if isinstance(message, str):
        event_dict["event"] = _redact(message)

    for field in _KEY_FIELDS:
        value = event_dict.get(field)
        if isinstance(value, str):
            event_dict[field] = _redact(value)

    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Upper-case the log level name.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_thread_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_pii,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value", stage="2.1")
    """
    return structlog.get_logger(name)


def set_thread_id(thread_id: str) -> None:
    """
    Set thread ID in context for current request.

    STAGE-1.1: Thread ID context initialization
    """
    thread_id_ctx.set(thread_id)


def get_thread_id() -> str | None:
    """Get current thread ID from context."""
    return thread_id_ctx.get()


def clear_thread_id() -> None:
    """Clear thread ID from context."""
    thread_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Args:
        logger: Logger instance
        stage: Stage identifier (e.g., "2.1", "W")
        message: Log message
        level: Log level (debug, info, warning, error, critical)
        **kwargs: Additional fields to log

    Usage:
        log_stage(logger, "2.1", "Hot tier hit", cache_key="bill:detail:42")
    """
    log_func = getattr(logger, level.lower())
    log_func(message, stage=stage, **kwargs)
