"""
Structured logging configuration for the dewatermark client.

Provides:
- JSON or console formatted structured logs
- Sensitive data sanitization (API keys never reach the log sink)
- Configurable log levels

The library only obtains loggers; applications opt in to formatting by
calling ``configure_logging()``.
"""
from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import structlog

from dewatermark import __version__

# Sensitive keys that should never appear in logs
SENSITIVE_KEYS: Set[str] = frozenset({
    "api_key",
    "x-api-key",
    "password",
    "token",
    "secret",
    "credential",
    "authorization",
})


def new_request_id() -> str:
    """Generate a short correlation id for one client call."""
    return f"req_{uuid.uuid4().hex[:12]}"


def sanitize_log_context(context: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove sensitive values from log context.

    Args:
        context: Log context dictionary

    Returns:
        Sanitized context with sensitive values redacted
    """
    sanitized = {}
    for key, value in context.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_log_context(value)
        elif isinstance(value, (list, tuple)):
            sanitized[key] = [
                sanitize_log_context(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            sanitized[key] = value
    return sanitized


def sanitize_sensitive_data(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """Structlog processor to sanitize sensitive data from logs."""
    return sanitize_log_context(event_dict)


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """Structlog processor to add ISO timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_client_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """Structlog processor to add client metadata."""
    event_dict["service"] = "dewatermark-client"
    event_dict["version"] = __version__
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    use_structured_logging: bool = True,
) -> None:
    """
    Configure structured logging for an application using the client.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON logs. If False, use console format.
        use_structured_logging: If True, use structlog. If False, use basic logging.
    """
    log_level_num = getattr(logging, log_level.upper(), logging.INFO)

    if not use_structured_logging:
        logging.basicConfig(
            level=log_level_num,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stdout,
        )
        return

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_client_info,
        sanitize_sensitive_data,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level_num,
    )

    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def configure_logging_from_settings(settings: Optional[Any] = None) -> None:
    """Configure logging from ``LOG_LEVEL``/``LOG_FORMAT``/``USE_STRUCTURED_LOGGING``."""
    if settings is None:
        from dewatermark.infra.settings import get_settings

        settings = get_settings()
    configure_logging(
        log_level=settings.LOG_LEVEL,
        json_format=settings.LOG_FORMAT == "json",
        use_structured_logging=settings.USE_STRUCTURED_LOGGING,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Events always end up in the stdlib logger called ``name``, so the host
    application's logging setup decides level and destination. Until it
    configures anything, the ``NullHandler`` on the package logger keeps
    the client silent.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger bound to the given name
    """
    return structlog.wrap_logger(logging.getLogger(name))
