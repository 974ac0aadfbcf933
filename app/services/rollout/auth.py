"""
Rollout bearer token minting.

Tokens are short-lived HS512 JWTs signed with the client secret:
    iss = client id, sub = consumer key, iat/exp = issue time and expiry.
The client pair comes from the session first and the environment second.
"""

import time
from dataclasses import dataclass

import jwt

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.session_domain import ClientCredentials, SessionPreferences, clean_string

logger = get_logger(__name__)

TOKEN_ALGORITHM = "HS512"


class RolloutConfigurationError(Exception):
    """No usable Rollout client credentials for this session."""

    def __init__(self, message: str = "Rollout client credentials are not configured for this session"):
        super().__init__(message)
        self.status_code = 401


@dataclass(frozen=True)
class RolloutToken:
    token: str
    expires_at: int


def effective_client_credentials(preferences: SessionPreferences) -> ClientCredentials | None:
    """Session client pair, else the configured fallback pair, else None."""
    session_credentials = preferences.client_credentials
    if session_credentials:
        return session_credentials

    default_pair = settings.default_client_credentials()
    if default_pair:
        client_id, client_secret = default_pair
        return ClientCredentials(client_id=client_id, client_secret=client_secret)
    return None


def require_client_credentials(preferences: SessionPreferences) -> ClientCredentials:
    credentials = effective_client_credentials(preferences)
    if not credentials:
        raise RolloutConfigurationError()
    return credentials


def resolve_consumer_key(preferences: SessionPreferences, provided: str | None = None) -> str:
    """Explicit override, then the session value, then the configured default."""
    return clean_string(provided) or preferences.consumer_key or settings.ROLLOUT_CONSUMER_KEY


def create_rollout_token(preferences: SessionPreferences, consumer_key: str | None = None) -> RolloutToken:
    """
    Sign a bearer token for the given consumer key.

    Raises:
        RolloutConfigurationError: If neither the session nor the environment
            provides a client id/secret pair.
        ValueError: If the consumer key is empty.
    """
    consumer_key = consumer_key if consumer_key is not None else settings.ROLLOUT_CONSUMER_KEY
    if not consumer_key:
        raise ValueError("Missing consumer key")

    credentials = require_client_credentials(preferences)
    issued_at = int(time.time())
    expires_at = issued_at + settings.ROLLOUT_TOKEN_TTL_SECS

    token = jwt.encode(
        {
            "iss": credentials.client_id,
            "sub": consumer_key,
            "iat": issued_at,
            "exp": expires_at,
        },
        credentials.client_secret,
        algorithm=TOKEN_ALGORITHM,
    )
    logger.debug("Rollout token minted", client_id=credentials.client_id, consumer_key=consumer_key)
    return RolloutToken(token=token, expires_at=expires_at)
