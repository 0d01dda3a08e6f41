"""
Infrastructure layer: configuration and observability.

Provides:
- Structured logging with API key redaction
- Environment-driven settings
"""
from dewatermark.infra.logging import (
    configure_logging,
    configure_logging_from_settings,
    get_logger,
    new_request_id,
    sanitize_log_context,
    SENSITIVE_KEYS,
)
from dewatermark.infra.settings import (
    Settings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "new_request_id",
    "sanitize_log_context",
    "SENSITIVE_KEYS",
    "Settings",
    "clear_settings_cache",
    "get_settings",
]
