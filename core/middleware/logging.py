"""
Structured logging middleware with credential masking.
Logs request start/completion as JSON lines without exposing tokens or
contact details that raters may type into evaluation comments.
"""

import json
import logging
import re
import time
import traceback
import uuid
from typing import Any, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


# Field names whose values are never logged
SENSITIVE_FIELD_PATTERNS = [
    re.compile(r'password', re.IGNORECASE),
    re.compile(r'token', re.IGNORECASE),
    re.compile(r'api[_-]?key', re.IGNORECASE),
    re.compile(r'secret', re.IGNORECASE),
    re.compile(r'authorization', re.IGNORECASE),
    re.compile(r'bearer', re.IGNORECASE),
    re.compile(r'cookie', re.IGNORECASE),
    re.compile(r'session', re.IGNORECASE),
]

# Free-text patterns replaced inside logged strings
PII_PATTERNS = [
    (re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'), '[EMAIL]'),
    (re.compile(r'\+\d{1,3}[-.\s]?\d{1,4}[-.\s]?\d{1,4}[-.\s]?\d{1,9}'), '[PHONE]'),
    (re.compile(r'\b\d{3}[-.]?\d{3}[-.]?\d{4}\b'), '[PHONE]'),
]

# Paths excluded from request logging
QUIET_PATHS = ('/health', '/ready', '/metrics')

# Record attributes copied into structured output when present
CONTEXT_FIELDS = ('request_id', 'rater_id', 'evaluation_id')


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates a credential."""
    return any(pattern.search(field_name) for pattern in SENSITIVE_FIELD_PATTERNS)


def mask_text(value: str) -> str:
    for pattern, replacement in PII_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


def mask_sensitive_data(data: Any, depth: int = 0, max_depth: int = 10) -> Any:
    """
    Recursively mask sensitive data in dictionaries and lists.

    Args:
        data: Data structure to mask
        depth: Current recursion depth
        max_depth: Maximum recursion depth to prevent infinite loops

    Returns:
        Data structure with credentials redacted and contact details masked
    """
    if depth > max_depth:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(data, dict):
        return {
            key: "[REDACTED]"
            if is_sensitive_field(str(key))
            else mask_sensitive_data(value, depth + 1, max_depth)
            for key, value in data.items()
        }

    if isinstance(data, list):
        return [mask_sensitive_data(item, depth + 1, max_depth) for item in data]

    if isinstance(data, str):
        return mask_text(data)

    return data


def mask_headers(headers: dict) -> dict:
    """
    Mask sensitive headers; the authorization scheme stays visible.

    Args:
        headers: Dictionary of HTTP headers

    Returns:
        Headers with sensitive values masked
    """
    masked = {}
    for key, value in headers.items():
        key_lower = key.lower()
        if not is_sensitive_field(key_lower):
            masked[key] = value
        elif key_lower == 'authorization' and isinstance(value, str) and ' ' in value:
            masked[key] = f"{value.split(' ', 1)[0]} [REDACTED]"
        else:
            masked[key] = "[REDACTED]"
    return masked


def should_log_request(path: str) -> bool:
    """Health and readiness probes are not logged."""
    return not path.startswith(QUIET_PATHS)


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request, handling proxies.

    The last IPv4 octet is masked; anything else is reported as ``unknown``.
    """
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        ip = forwarded_for.split(',')[0].strip()
    else:
        ip = request.client.host if request.client else 'unknown'

    parts = ip.split('.')
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.{parts[2]}.xxx"
    return 'unknown'


def performance_bucket(duration: float) -> str:
    if duration > 5.0:
        return 'slow'
    if duration > 1.0:
        return 'moderate'
    return 'fast'


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Request logging middleware.

    Features:
    - One JSON line when a request starts and one when it completes
    - Request ID propagated from ``x-request-id`` or generated
    - Rater id attached once the route has authenticated the caller
    - Optional masked request bodies
    """

    def __init__(
        self,
        app: ASGIApp,
        log_request_body: bool = False,
        log_response_body: bool = False,
        max_body_size: int = 1024,
    ):
        """
        Initialize logging middleware.

        Args:
            app: The ASGI application
            log_request_body: Whether to log request bodies (masked)
            log_response_body: Whether to log response sizes
            max_body_size: Maximum body size to log (bytes)
        """
        super().__init__(app)
        self.log_request_body = log_request_body
        self.log_response_body = log_response_body
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get('x-request-id', str(uuid.uuid4()))
        request.state.request_id = request_id

        if not should_log_request(request.url.path):
            response = await call_next(request)
            response.headers['x-request-id'] = request_id
            return response

        start_time = time.time()

        request_log = {
            'event': 'request_started',
            'request_id': request_id,
            'method': request.method,
            'path': request.url.path,
            'query_params': mask_sensitive_data(dict(request.query_params)),
            'client_ip': get_client_ip(request),
            'user_agent': request.headers.get('user-agent', 'unknown'),
            'headers': mask_headers(dict(request.headers)),
        }

        if self.log_request_body and request.method in ('POST', 'PUT', 'PATCH'):
            body = await self._get_request_body(request)
            if body:
                request_log['body'] = mask_sensitive_data(body)

        logger.info(json.dumps(request_log))

        response = None
        error_details = None

        try:
            response = await call_next(request)
        except Exception as exc:
            error_details = {'type': type(exc).__name__}
            logger.error(
                f"Request processing error: {request.method} {request.url.path}",
                exc_info=True,
                extra={'request_id': request_id},
            )
            raise
        finally:
            duration = time.time() - start_time

            response_log = {
                'event': 'request_completed',
                'request_id': request_id,
                'method': request.method,
                'path': request.url.path,
                'duration_ms': round(duration * 1000, 2),
                'status_code': response.status_code if response else 500,
                'performance': performance_bucket(duration),
            }

            rater_id = getattr(request.state, 'rater_id', None)
            if rater_id:
                response_log['rater_id'] = rater_id

            if error_details:
                response_log['error'] = error_details

            if response is not None and self.log_response_body:
                content_length = response.headers.get('content-length')
                if content_length:
                    response_log['response_size'] = int(content_length)

            if response is None or response.status_code >= 500:
                logger.error(json.dumps(response_log))
            elif response.status_code >= 400:
                logger.warning(json.dumps(response_log))
            else:
                logger.info(json.dumps(response_log))

            if response is not None:
                response.headers['x-request-id'] = request_id

        return response

    async def _get_request_body(self, request: Request) -> Any:
        """
        Read a JSON request body for logging.

        Returns:
            Parsed body, a size marker when it exceeds ``max_body_size``,
            a content type marker for non-JSON bodies, or None when unreadable
        """
        content_type = request.headers.get('content-type', '')
        if 'application/json' not in content_type:
            return {'_content_type': content_type}

        try:
            body_bytes = await request.body()
            if len(body_bytes) > self.max_body_size:
                return {'_truncated': True, '_size': len(body_bytes)}
            return json.loads(body_bytes.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            logger.debug(f"Could not parse request body: {e}")
            return None


class StructuredFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info and record.exc_info[0] is not None:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO", json_logs: bool = True):
    """
    Configure application-wide logging on the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Whether to format logs as JSON
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if json_logs:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
