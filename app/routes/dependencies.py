"""
Shared route dependencies and helpers.
"""

from fastapi import HTTPException, Request, status

from app.infrastructure.observability.logging import get_logger
from app.models.domain.session_domain import SessionPreferences
from app.services.rollout.auth import RolloutConfigurationError
from app.services.rollout.client import RolloutAPIError
from app.services.rollout.credentials import NoCredentialAvailableError

logger = get_logger(__name__)


def get_session_preferences(request: Request) -> SessionPreferences:
    """Preferences backed by this request's session cookie."""
    return SessionPreferences(request.session)


def parse_limit(raw: str | None, default: int, maximum: int) -> int:
    """Positive integer up to `maximum`; anything else means `default`."""
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if 0 < value <= maximum else default


def clean_query(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def http_error_for(error: Exception, fallback_message: str, use_upstream_body: bool = False) -> HTTPException:
    """
    Map a service error to an HTTPException, keeping the most specific status.
    """
    if isinstance(error, RolloutAPIError):
        detail = error.body if use_upstream_body and error.body else str(error)
        return HTTPException(status_code=error.status_code, detail=detail)
    if isinstance(error, RolloutConfigurationError | NoCredentialAvailableError):
        return HTTPException(status_code=error.status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=fallback_message)
