"""
Buildy core: errors, structured logging, settings and the event channel.

Modules
-------
errors      BuildyError hierarchy with categories and context
logging     structlog configuration and get_logger
settings    BuildySettings (pydantic-settings, BUILDY_ prefix)
events      Event model, EventChannel protocol, InMemoryEventChannel
"""

from buildy.core.errors import BuildyError, ErrorCategory, ErrorContext
from buildy.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "BuildyError",
    "ErrorCategory",
    "ErrorContext",
    "LogContext",
    "configure_logging",
    "get_logger",
]
