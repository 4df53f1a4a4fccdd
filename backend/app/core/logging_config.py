"""
Structured JSON Logging Configuration

Provides centralized logging configuration with:
- JSON formatted output for machine parsing
- Request ID tracking via contextvars
- File rotation (app.log and error.log)
- Configurable log levels via environment
"""
import logging
import logging.handlers
import os
import contextvars
import re
from datetime import datetime, timezone
from typing import Optional
from pythonjsonlogger import jsonlogger

from app.core.config import settings

# Context variable for request ID propagation
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)

# Application version (can be overridden)
APP_VERSION = "1.0.0"

# Log directory configuration
LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'logs')

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ('uvicorn.access', 'httpx', 'httpcore', 'urllib3', 'google.auth')


class RequestIdFilter(logging.Filter):
    """
    Logging filter that adds request_id to all log records.

    Uses contextvars to access the current request's ID. Records emitted by
    the background sync loop carry "-".
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """
    Filter that strips CR/LF from log messages.

    Person hashes and camera ids arrive from an external feed and are
    interpolated into messages, so they must not be able to forge lines.
    """

    LINE_BREAKS = re.compile(r'\r\n|\n|\r')

    def _clean(self, value):
        if isinstance(value, str):
            return self.LINE_BREAKS.sub(' ', value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._clean(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self._clean(arg) for arg in record.args)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that adds standard fields to all log entries.

    Output format:
    {
        "timestamp": "2025-11-23T10:30:00.000Z",
        "level": "INFO",
        "message": "Event reconciled",
        "module": "reconciler",
        "request_id": "-",
        "logger": "app.services.reconciler",
        ...extra fields...
    }
    """

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()

        log_record['level'] = record.levelname
        log_record['module'] = record.module
        log_record['logger'] = record.name
        log_record['request_id'] = getattr(record, 'request_id', '-')

        if record.funcName:
            log_record['function'] = record.funcName
        if record.lineno:
            log_record['line'] = record.lineno

        if 'message' not in log_record:
            log_record['message'] = record.getMessage()


def _build_handler(
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SanitizingFilter())
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    app_version: Optional[str] = None
) -> logging.Logger:
    """
    Configure application-wide logging with JSON format and rotation.

    Args:
        log_level: Override log level (default from settings.LOG_LEVEL)
        log_dir: Override log directory (default: backend/data/logs)
        app_version: Application version to include in startup logs

    Returns:
        Root logger configured for the application
    """
    global APP_VERSION

    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or LOG_DIR
    if app_version:
        APP_VERSION = app_version

    os.makedirs(directory, exist_ok=True)

    json_formatter = CustomJsonFormatter(
        '%(timestamp)s %(level)s %(name)s %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    root_logger.addHandler(
        _build_handler(logging.StreamHandler(), level, json_formatter)
    )

    # 100MB per file, 7 backups
    root_logger.addHandler(_build_handler(
        logging.handlers.RotatingFileHandler(
            os.path.join(directory, 'app.log'),
            maxBytes=100 * 1024 * 1024,
            backupCount=7,
            encoding='utf-8'
        ),
        level,
        json_formatter,
    ))

    root_logger.addHandler(_build_handler(
        logging.handlers.RotatingFileHandler(
            os.path.join(directory, 'error.log'),
            maxBytes=50 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        ),
        logging.ERROR,
        json_formatter,
    ))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the application's configuration."""
    return logging.getLogger(name)


def set_request_id(request_id: str) -> contextvars.Token:
    """
    Set the request ID for the current context.

    Returns:
        Token that can be used to reset the context
    """
    return request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context, or None outside a request."""
    return request_id_var.get()


def clear_request_id(token: contextvars.Token) -> None:
    """Clear the request ID context using the token from set_request_id."""
    request_id_var.reset(token)


def sanitize_log_value(value, max_length: int = 256) -> str:
    """
    Make an externally supplied value safe to put in a log field.

    Args:
        value: Value to sanitize (non-strings are converted with str())
        max_length: Longer values are truncated

    Returns:
        Single-line string of at most max_length characters plus a marker
    """
    text = value if isinstance(value, str) else str(value)
    text = text.replace('\r\n', ' ').replace('\n', ' ').replace('\r', ' ')
    if len(text) > max_length:
        text = text[:max_length] + '...[truncated]'
    return text
