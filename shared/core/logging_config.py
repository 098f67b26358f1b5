"""
Structured JSON logging for the storefront service.

Every record is emitted as one JSON object carrying the service identity,
the request context (request id, correlation id, admin id) and any
``extra_fields`` passed by the caller.
"""

import logging
import logging.handlers
import os
import re
import sys
import json
import time
import traceback
import uuid
from datetime import datetime
from typing import Any, Dict, Optional
from contextvars import ContextVar
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
admin_id_var: ContextVar[Optional[str]] = ContextVar('admin_id', default=None)

class StructuredFormatter(logging.Formatter):
    """Render log records as single-line JSON"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "@timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": os.getenv('SERVICE_NAME', 'storefront'),
            "environment": os.getenv('ENVIRONMENT', 'development'),
            "version": os.getenv('SERVICE_VERSION', '1.0.0'),
            "location": {
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            },
        }

        trace = _current_trace()
        if trace:
            log_obj["trace"] = trace

        if record.exc_info:
            log_obj["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info)
            }

        if hasattr(record, 'extra_fields'):
            log_obj["custom"] = record.extra_fields

        if hasattr(record, 'duration_ms'):
            log_obj["performance"] = {"duration_ms": record.duration_ms}

        return json.dumps(log_obj, default=str)

def _current_trace() -> Optional[Dict[str, str]]:
    context = {
        "request_id": request_id_var.get(),
        "correlation_id": correlation_id_var.get(),
        "admin_id": admin_id_var.get(),
    }
    context = {k: v for k, v in context.items() if v}
    return context or None

class CardNumberFilter(logging.Filter):
    """Mask anything that looks like a payment card number.

    Card numbers never reach the database, but a raw payload echoed into a
    log line would still leak them.
    """

    CARD_PATTERN = re.compile(r"\b(?:\d[ -]?){12,18}(\d{4})\b")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = self.CARD_PATTERN.sub(lambda m: "**** " + m.group(1), message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True

def setup_logging(
    service_name: str,
    level: str = "INFO",
    log_file: Optional[str] = None
) -> None:
    """
    Install the JSON formatter on the root logger.

    Args:
        service_name: Name reported in every record
        level: Log level name
        log_file: Optional path for an additional rotating file handler
    """
    os.environ['SERVICE_NAME'] = service_name

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    formatter = StructuredFormatter()
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.handlers.RotatingFileHandler(log_file, maxBytes=10485760, backupCount=5))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(CardNumberFilter())
        root_logger.addHandler(handler)

    logging.getLogger('uvicorn').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialized",
        extra={'extra_fields': {'service': service_name, 'level': level, 'file': log_file}}
    )

class LoggerAdapter(logging.LoggerAdapter):
    """Attach the current request context to every record"""

    def process(self, msg, kwargs):
        extra = kwargs.get('extra', {})
        for key, var in (('request_id', request_id_var), ('correlation_id', correlation_id_var), ('admin_id', admin_id_var)):
            value = var.get()
            if value:
                extra[key] = value
        kwargs['extra'] = extra
        return msg, kwargs

def get_logger(name: str) -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger(name), {})

def set_request_context(
    request_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    admin_id: Optional[str] = None
) -> None:
    if request_id:
        request_id_var.set(request_id)
    if correlation_id:
        correlation_id_var.set(correlation_id)
    if admin_id:
        admin_id_var.set(admin_id)

def generate_request_id() -> str:
    return str(uuid.uuid4())

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log the start, completion or failure of every request with its duration
    and echo the request id back in ``X-Request-ID``.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        set_request_context(
            request_id=request_id,
            correlation_id=request.headers.get('X-Correlation-ID')
        )

        logger = get_logger(__name__)
        fields = {'method': request.method, 'path': request.url.path}
        logger.info(f"Request started: {request.method} {request.url.path}", extra={'extra_fields': fields})

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                exc_info=True,
                extra={'extra_fields': {**fields, 'duration_ms': (time.time() - start_time) * 1000}}
            )
            raise

        logger.info(
            f"Request completed: {request.method} {request.url.path}",
            extra={'extra_fields': {
                **fields,
                'status_code': response.status_code,
                'duration_ms': (time.time() - start_time) * 1000
            }}
        )
        response.headers['X-Request-ID'] = request_id
        return response
