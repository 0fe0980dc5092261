"""Structured JSON logging for the scrape worker.

One JSON object per line on stdout. Message text, exception text and
string extras are run through PIIRedactor first, because target URLs are
caller-supplied and may carry credentials or tokens.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .pii_redactor import PIIRedactor

# Attributes every LogRecord has; anything else on a record is an extra
_RECORD_ATTRS = frozenset([
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'taskName', 'message', 'asctime',
])

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _redact(value: Any) -> Any:
    return PIIRedactor.redact_for_logging(value) if isinstance(value, str) else value


class JSONFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    # Emitted in this order, ahead of any other extras
    STANDARD_FIELDS = [
        "request_id", "caller_id", "outcome", "status", "error_code",
        "upstream_status", "hostname", "address", "hops", "duration_ms",
    ]

    def __init__(self, redact_pii: bool = True):
        super().__init__()
        self.redact_pii = redact_pii

    def _clean(self, value: Any) -> Any:
        return _redact(value) if self.redact_pii else value

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": self._clean(record.getMessage()),
        }

        for name in self.STANDARD_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = self._clean(value)

        if record.exc_info:
            exc_type, exc_value, _tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": self._clean(str(exc_value)) if exc_value else None,
                "traceback": self._clean(self.formatException(record.exc_info)),
            }

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in self.STANDARD_FIELDS or key.startswith('_'):
                continue
            entry[key] = self._clean(value)

        return json.dumps(entry, default=str, ensure_ascii=False)


class RedactingTextFormatter(logging.Formatter):
    """Plain-text formatter for local development, still redacted."""

    def __init__(self):
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        return PIIRedactor.redact_for_logging(super().format(record))


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Attach fixed context (request id, caller id) to every record.

    Per-call ``extra`` values take precedence over the adapter's context.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs


def setup_json_logging(level: str = "INFO", redact_pii: bool = True):
    """
    Configure root logger for JSON output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        redact_pii: Whether to redact PII from logs
    """
    _install_root_handler(JSONFormatter(redact_pii=redact_pii), level)


def setup_logging(log_format: str = "json", level: str = "INFO"):
    """Configure the root logger for ``json`` or ``text`` output."""
    if log_format == "json":
        setup_json_logging(level=level, redact_pii=True)
    else:
        _install_root_handler(RedactingTextFormatter(), level)


def _install_root_handler(formatter: logging.Formatter, level: str):
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # httpx logs full request URLs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_structured_logger(name: str, **context) -> StructuredLoggerAdapter:
    """
    Get a structured logger with optional context.

    Args:
        name: Logger name
        **context: Default context fields (caller_id, request_id, etc.)
    """
    return StructuredLoggerAdapter(logging.getLogger(name), context)


def request_logger(request_id: str, caller_id: Optional[str] = None) -> StructuredLoggerAdapter:
    """Create a logger pre-configured for one scrape request."""
    return get_structured_logger("scrape.request", request_id=request_id, caller_id=caller_id)
