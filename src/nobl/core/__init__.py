"""
nobl.core - Shared primitives: errors, logging and settings.

Modules
-------
errors      NoblError hierarchy and categorisation helpers
logging     structlog configuration and context helpers
settings    NoblSettings (pydantic-settings, NOBL_ prefix)
"""

from nobl.core.errors import (
    CompletionCancelledError,
    ContextViolationError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    ListenerError,
    NoblError,
    OperationCancelledError,
    categorize_error,
    is_cancellation,
)
from nobl.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_from_settings,
    configure_logging,
    get_logger,
    unbind_context,
)
from nobl.core.settings import NoblSettings

__all__ = [
    # errors
    "ErrorCategory",
    "ErrorContext",
    "NoblError",
    "OperationCancelledError",
    "ListenerError",
    "CompletionCancelledError",
    "ContextViolationError",
    "InvalidConfigError",
    "categorize_error",
    "is_cancellation",
    # logging
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    # settings
    "NoblSettings",
]
