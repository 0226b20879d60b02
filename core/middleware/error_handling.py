"""
Error handling middleware with security-compliant error sanitization.
Prevents sensitive data leakage while providing useful error information.

Failed service results reach this layer as ``ServiceFailure`` and are rendered
with the status code of their error category.
"""

import logging
import re
import traceback
from typing import Any, Callable, Optional

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.exceptions import ErrorCategory, ErrorCode, ServiceError, ServiceFailure, StoreError

logger = logging.getLogger(__name__)

# Patterns for sensitive data that should never be logged. A key only counts
# when it is followed by ':' or '=', so prose such as "token has expired" is kept.
SENSITIVE_PATTERNS = [
    re.compile(r'password["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', re.IGNORECASE),
    re.compile(r'token["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', re.IGNORECASE),
    re.compile(r'api[_-]?key["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\']?\s*[:=]\s*["\']?[^"\'\s,}]+', re.IGNORECASE),
    re.compile(r'authorization["\']?\s*:\s*["\']?[^"\'\s,}]+', re.IGNORECASE),
    re.compile(r'postgres(?:ql)?(?:\+\w+)?://\S+', re.IGNORECASE),  # DSN with credentials
]

CATEGORY_STATUS = {
    ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.STORE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

# Codes whose status differs from their category
CODE_STATUS = {
    ErrorCode.ORGANIZATION_MISMATCH: status.HTTP_403_FORBIDDEN,
}


def sanitize_error_message(message: str) -> str:
    """
    Remove sensitive information from error messages.

    Args:
        message: Original error message

    Returns:
        Sanitized error message
    """
    sanitized = message
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub('[REDACTED]', sanitized)
    return sanitized


def get_safe_error_details(exc: Exception, include_details: bool = False) -> dict[str, Any]:
    """
    Extract safe error details without exposing sensitive information.

    Args:
        exc: The exception to extract details from
        include_details: Whether to include detailed error information (only in dev)

    Returns:
        Dictionary with safe error details
    """
    details = {
        "type": type(exc).__name__,
        "message": sanitize_error_message(str(exc)),
    }

    if include_details:
        # Only include stack trace in development
        details["traceback"] = traceback.format_exc()

    return details


def service_error_status(error: ServiceError) -> int:
    """HTTP status code of a service error."""
    return CODE_STATUS.get(error.code, CATEGORY_STATUS[error.category])


def error_body(
    code: str,
    message: str,
    path: str,
    method: str,
    field: Optional[str] = None,
    details: Any = None,
) -> dict[str, Any]:
    """Build the ``{"error": {...}}`` envelope shared by every error response."""
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "path": path,
        "method": method,
    }
    if field is not None:
        body["field"] = field
    if details is not None:
        body["details"] = details
    return {"error": body}


def format_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """
    Format request validation errors into a user-friendly structure.

    Input values are echoed back only when they are plain scalars that match
    no sensitive pattern.
    """
    errors = []
    for error in exc.errors():
        error_dict = {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": sanitize_error_message(error["msg"]),
            "type": error["type"],
        }

        if "input" in error:
            input_value = error["input"]
            if isinstance(input_value, (str, int, float, bool)):
                input_str = str(input_value)
                if not any(pattern.search(input_str) for pattern in SENSITIVE_PATTERNS):
                    error_dict["input"] = input_value

        errors.append(error_dict)

    return errors


def service_failure_response(exc: ServiceFailure, path: str, method: str) -> JSONResponse:
    error = exc.error
    status_code = service_error_status(error)
    if error.category is ErrorCategory.STORE:
        logger.error(f"Store unavailable: {method} {path}")
    else:
        logger.info(f"Rejected {method} {path}: {error.code.value} - {error.message}")
    return JSONResponse(
        status_code=status_code,
        content=error_body(
            error.code.value,
            sanitize_error_message(error.message),
            path,
            method,
            field=error.field,
        ),
    )


class ErrorHandlingMiddleware:
    """
    Outermost error boundary of the application.

    Features:
    - Sanitizes error messages to prevent sensitive data leakage
    - Renders failed service results with their category status
    - Returns a generic 503 for storage faults
    - Logs errors with appropriate severity
    """

    def __init__(self, app: Callable, debug: bool = False):
        """
        Initialize error handling middleware.

        Args:
            app: The ASGI application
            debug: Whether to include detailed error information
        """
        self.app = app
        self.debug = debug

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            response = await self._handle_exception(exc, scope)
            await response(scope, receive, send)

    async def _handle_exception(self, exc: Exception, scope: dict) -> Response:
        """
        Handle different types of exceptions and return appropriate responses.

        Args:
            exc: The exception to handle
            scope: ASGI scope for context

        Returns:
            JSONResponse with error details
        """
        request_path = scope.get("path", "unknown")
        request_method = scope.get("method", "unknown")

        if isinstance(exc, ServiceFailure):
            return service_failure_response(exc, request_path, request_method)

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        error_code = "INTERNAL_SERVER_ERROR"
        message = "An unexpected error occurred"
        details = None

        if isinstance(exc, StarletteHTTPException):
            status_code = exc.status_code
            error_code = "HTTP_EXCEPTION"
            message = sanitize_error_message(str(exc.detail))
            logger.warning(
                f"HTTP exception: {request_method} {request_path} - "
                f"Status: {status_code}, Message: {message}"
            )

        elif isinstance(exc, RequestValidationError):
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
            error_code = "VALIDATION_ERROR"
            message = "Request validation failed"
            details = format_validation_errors(exc)
            logger.warning(
                f"Validation error: {request_method} {request_path} - "
                f"Errors: {details}"
            )

        elif isinstance(exc, StoreError):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            error_code = ErrorCode.STORE_ERROR.value
            message = ServiceError.store_failure().message
            logger.error(
                f"Store error: {request_method} {request_path}",
                exc_info=True
            )

        elif isinstance(exc, IntegrityError):
            status_code = status.HTTP_409_CONFLICT
            error_code = "INTEGRITY_ERROR"
            message = "Database integrity constraint violated"
            if self.debug:
                details = get_safe_error_details(exc, include_details=True)
            logger.error(
                f"Database integrity error: {request_method} {request_path}",
                exc_info=not self.debug
            )

        elif isinstance(exc, OperationalError):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            error_code = "DATABASE_ERROR"
            message = "Database service temporarily unavailable"
            logger.error(
                f"Database operational error: {request_method} {request_path}",
                exc_info=True
            )

        elif isinstance(exc, SQLAlchemyError):
            error_code = "DATABASE_ERROR"
            message = "A database error occurred"
            if self.debug:
                details = get_safe_error_details(exc, include_details=True)
            logger.error(
                f"SQLAlchemy error: {request_method} {request_path}",
                exc_info=not self.debug
            )

        elif isinstance(exc, TimeoutError):
            status_code = status.HTTP_504_GATEWAY_TIMEOUT
            error_code = "TIMEOUT"
            message = "The request timed out"
            logger.error(f"Timeout error: {request_method} {request_path}")

        else:
            if self.debug:
                details = get_safe_error_details(exc, include_details=True)
            logger.error(
                f"Unhandled exception: {request_method} {request_path} - "
                f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
                exc_info=True
            )

        content = error_body(error_code, message, request_path, request_method, details=details)

        if "headers" in scope:
            headers = dict(scope["headers"])
            request_id = headers.get(b"x-request-id")
            if request_id:
                content["error"]["request_id"] = request_id.decode()

        return JSONResponse(status_code=status_code, content=content)


def setup_error_handlers(app):
    """
    Set up exception handlers for FastAPI application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(ServiceFailure)
    async def service_failure_handler(request: Request, exc: ServiceFailure):
        """Render a failed service result."""
        return service_failure_response(exc, str(request.url.path), request.method)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        """Storage faults escaping a service are reported without internals."""
        logger.error(
            f"Store error: {request.method} {request.url.path} - {type(exc).__name__}",
            exc_info=True
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=error_body(
                ErrorCode.STORE_ERROR.value,
                ServiceError.store_failure().message,
                str(request.url.path),
                request.method,
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                "HTTP_EXCEPTION",
                sanitize_error_message(str(exc.detail)),
                str(request.url.path),
                request.method,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request body and parameter validation errors."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(
                "VALIDATION_ERROR",
                "Request validation failed",
                str(request.url.path),
                request.method,
                details=format_validation_errors(exc),
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        logger.error(
            f"Unhandled exception: {request.method} {request.url.path} - "
            f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
            exc_info=True
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                "INTERNAL_SERVER_ERROR",
                "An unexpected error occurred",
                str(request.url.path),
                request.method,
            ),
        )
