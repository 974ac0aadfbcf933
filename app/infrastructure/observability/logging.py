"""
Structured logging for the Rollout CRM demo backend.

JSON lines on stdout. Request-scoped fields (request_id) come from structlog
contextvars bound by RequestContextMiddleware; secrets never reach the output.
"""

import json
import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

# Upstream payload previews are cut to this many characters
PREVIEW_LIMIT = 2000

REDACTED = "[redacted]"
SECRET_FIELDS = frozenset({"client_secret", "token", "authorization", "session_secret"})

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _redact_secrets(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask values of secret-looking fields."""
    for key in event_dict.keys() & SECRET_FIELDS:
        event_dict[key] = REDACTED
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog and stdlib logging.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_secrets,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper()))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def preview(value: Any, limit: int = PREVIEW_LIMIT) -> str:
    """Upstream payload as a short string for log fields."""
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text[:limit]


def log_request(method: str, path: str, status_code: int, duration_ms: float, request_id: str = None):
    """One line per inbound HTTP request; 4xx/5xx log as warnings."""
    fields = {"method": method, "path": path, "status_code": status_code, "duration_ms": duration_ms}
    if request_id:
        fields["request_id"] = request_id

    logger = get_logger("http")
    if status_code >= 400:
        logger.warning("HTTP request failed", **fields)
    else:
        logger.info("HTTP request completed", **fields)
