"""
Core middleware package.

- Error handling with sensitive data sanitization and service error mapping
- Structured request logging with credential masking
"""

from core.middleware.error_handling import (
    ErrorHandlingMiddleware,
    setup_error_handlers,
    sanitize_error_message,
    service_error_status,
)

from core.middleware.logging import (
    StructuredLoggingMiddleware,
    setup_logging,
)

__all__ = [
    # Error handling
    "ErrorHandlingMiddleware",
    "setup_error_handlers",
    "sanitize_error_message",
    "service_error_status",
    # Logging
    "StructuredLoggingMiddleware",
    "setup_logging",
]
