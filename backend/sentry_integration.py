"""
Clinic Core - Sentry Integration

Error tracking with Sentry. Disabled unless SENTRY_DSN is configured.
Entry payloads contain practitioner earnings, so request bodies and any
amount-like keys are redacted before events leave the process.
"""

import os
import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)


SENSITIVE_KEYS = [
    "password", "token", "secret", "api_key", "authorization",
    "cookie", "tfn", "abn",
]

# Keys of entry payloads that carry money
FINANCIAL_KEYS = [
    "amount", "value", "commission", "fee", "remitted", "reimbursement",
    "reduction", "gst", "calculations", "values", "deductions",
]


def _is_redacted(key: str) -> bool:
    key_lower = key.lower()
    return any(s in key_lower for s in SENSITIVE_KEYS + FINANCIAL_KEYS)


def redact_dict(d: Any) -> Any:
    """Recursively replace sensitive values with [REDACTED]."""
    if not isinstance(d, dict):
        return d

    result = {}
    for key, value in d.items():
        if isinstance(key, str) and _is_redacted(key):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = redact_dict(value)
        elif isinstance(value, list):
            result[key] = [redact_dict(v) for v in value]
        else:
            result[key] = value
    return result


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    before_send hook: redact headers, request data and extras.
    """
    request = event.get("request")
    if isinstance(request, dict):
        if "headers" in request:
            request["headers"] = redact_dict(request["headers"])
        if "data" in request:
            request["data"] = redact_dict(request["data"]) if isinstance(request["data"], dict) else "[REDACTED]"

    if "extra" in event:
        event["extra"] = redact_dict(event["extra"])

    return event


def init_sentry(
    dsn: Optional[str] = None,
    environment: str = "development",
    release: Optional[str] = None,
    sample_rate: float = 1.0,
    traces_sample_rate: float = 0.1,
) -> bool:
    """
    Initialize Sentry error tracking.

    Args:
        dsn: Sentry DSN (from environment if not provided)
        environment: Environment name (production, staging, development)
        release: Release version
        sample_rate: Error sampling rate (0.0 to 1.0)
        traces_sample_rate: Performance tracing sample rate

    Returns:
        True if Sentry was initialized, False otherwise
    """
    dsn = dsn or os.environ.get("SENTRY_DSN", "")

    if not dsn:
        logger.info("Sentry DSN not configured. Error tracking disabled.")
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=release or os.environ.get("GIT_SHA", "unknown"),
            sample_rate=sample_rate,
            traces_sample_rate=traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR
                ),
            ],
            send_default_pii=False,
            before_send=filter_sensitive_data,
            ignore_errors=[
                "ConnectionResetError",
                "BrokenPipeError",
            ],
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    logger.info(f"Sentry initialized for environment: {environment}")
    return True


def capture_exception(exception: Exception, **kwargs) -> Optional[str]:
    """
    Capture an exception to Sentry with extra context (e.g. entry_id).

    Returns:
        Event ID if captured, None otherwise
    """
    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in kwargs.items():
                scope.set_extra(key, value)
            return sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"Failed to capture exception to Sentry: {e}")
        return None


def set_tag(key: str, value: str):
    """Set a tag for Sentry."""
    sentry_sdk.set_tag(key, value)
