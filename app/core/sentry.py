"""
Sentry error tracking for the workshop backend.

Only active when SENTRY_DSN is configured. Conversion failures and
unhandled exceptions are reported with the quote and tenant as extras.
"""

import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_sentry_initialized = False

SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key")
# Public approval bodies carry the link token and the drawn signature
SENSITIVE_FIELDS = ("password", "token", "secret", "signature", "customer_signature")


def init_sentry() -> None:
    """Initialize Sentry SDK. Called during application startup in main.py."""
    global _sentry_initialized

    from app.config import settings

    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        before_send=filter_sensitive_data,
        send_default_pii=False,
        attach_stacktrace=True,
    )
    _sentry_initialized = True
    logger.info(f"Sentry initialized for {settings.ENVIRONMENT} environment")


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Strip credentials, link tokens and signatures before sending to Sentry."""
    request = event.get("request") or {}

    headers = request.get("headers")
    if isinstance(headers, dict):
        for header in list(headers):
            if header.lower() in SENSITIVE_HEADERS:
                headers[header] = "[Filtered]"

    data = request.get("data")
    if isinstance(data, dict):
        for field in SENSITIVE_FIELDS:
            if field in data:
                data[field] = "[Filtered]"

    query_string = request.get("query_string")
    if isinstance(query_string, str) and "token=" in query_string:
        request["query_string"] = "token=[Filtered]"

    return event


def capture_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture an exception to Sentry with additional context.

    Returns:
        Sentry event ID if captured, None otherwise
    """
    if not _sentry_initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in (context or {}).items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(exception)
