"""
Clinic Core - Structured Logging

JSON lines for log aggregation in production, plain text in development.

Records are stamped with the request id (set by the HTTP middleware) and the
clinic and entry a handler is working on. These live in context variables:
each request sees only its own values, and handlers add fields to the
context rather than replacing it.
"""

import json
import logging
import os
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


LOG_CONTEXT_FIELDS = ("request_id", "clinic_id", "entry_id")

_log_context: Dict[str, ContextVar] = {
    name: ContextVar(f"clinic_core_{name}", default=None) for name in LOG_CONTEXT_FIELDS
}

# Everything a bare LogRecord carries; the rest is caller-supplied context
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


# ==================== REQUEST CONTEXT ====================

def set_request_context(
    request_id: Optional[str] = None,
    clinic_id: Optional[str] = None,
    entry_id: Optional[str] = None
) -> None:
    """Add fields to the current logging context; None keeps the existing value."""
    updates = {"request_id": request_id, "clinic_id": clinic_id, "entry_id": entry_id}
    for name, value in updates.items():
        if value is not None:
            _log_context[name].set(value)


def clear_request_context() -> None:
    for var in _log_context.values():
        var.set(None)


def get_request_context() -> Dict[str, Optional[str]]:
    return {name: var.get() for name, var in _log_context.items()}


class RequestContextFilter(logging.Filter):
    """Copies the current request context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in get_request_context().items():
            setattr(record, name, value)
        return True


# ==================== FORMATTING ====================

def _exception_info(exc_info) -> Dict[str, Any]:
    exc_type, exc_value, _ = exc_info
    return {
        "type": exc_type.__name__ if exc_type else None,
        "message": str(exc_value) if exc_value else None,
        "traceback": traceback.format_exception(*exc_info) if exc_type else None,
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record; request context and `extra=` go under "extra"."""

    def __init__(self, service_name: str = "clinic-core"):
        super().__init__()
        self.static_fields = {
            "service": service_name,
            "environment": os.environ.get("ENVIRONMENT", "development"),
            "hostname": os.environ.get("HOSTNAME", "unknown"),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **self.static_fields,
            "location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        if record.exc_info:
            log_data["exception"] = _exception_info(record.exc_info)

        extra = {
            key: value for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and value is not None
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


# ==================== SETUP ====================

def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "clinic-core"
) -> logging.Logger:
    """
    Route all logging through one stdout handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines (production) or plain text
        service_name: Service name for log aggregation

    Returns:
        The configured root logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if json_format:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
        ))
    handler.addFilter(RequestContextFilter())
    root_logger.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
