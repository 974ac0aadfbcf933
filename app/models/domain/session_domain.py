# app/models/domain/session_domain.py
"""
Session Domain Models
Per-user preferences kept in the signed session cookie.
Nothing here is process-wide: every request wraps its own session mapping.
"""

from collections.abc import MutableMapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.infrastructure.observability.logging import get_logger
from app.services.infrastructure.encryption_service import EncryptionError, decrypt_secret, encrypt_secret

logger = get_logger(__name__)

DEFAULT_CREDENTIAL_KEY = "defaultCredentialId"
CONSUMER_KEY_KEY = "consumerKey"
CLIENT_CREDENTIALS_KEY = "rolloutClientCredentials"
# clientSecret is stored Fernet-encrypted


def clean_string(value: Any) -> str | None:
    """Trimmed string, or None for non-strings and blank values."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


@dataclass(frozen=True)
class ClientCredentials:
    """Rollout client id/secret pair used to sign bearer tokens."""

    client_id: str
    client_secret: str
    updated_at: str | None = None


class SessionPreferences:
    """Typed accessors over a session mapping."""

    def __init__(self, store: MutableMapping[str, Any]):
        self._store = store

    # Default credential -------------------------------------------------

    @property
    def default_credential_id(self) -> str | None:
        value = self._store.get(DEFAULT_CREDENTIAL_KEY)
        return value if isinstance(value, str) and value else None

    @default_credential_id.setter
    def default_credential_id(self, credential_id: str) -> None:
        self._store[DEFAULT_CREDENTIAL_KEY] = credential_id

    def clear_default_credential_id(self) -> None:
        self._store.pop(DEFAULT_CREDENTIAL_KEY, None)

    # Consumer key -------------------------------------------------------

    @property
    def consumer_key(self) -> str | None:
        return clean_string(self._store.get(CONSUMER_KEY_KEY))

    @consumer_key.setter
    def consumer_key(self, value: str | None) -> None:
        cleaned = clean_string(value)
        if cleaned:
            self._store[CONSUMER_KEY_KEY] = cleaned
        else:
            self._store.pop(CONSUMER_KEY_KEY, None)

    # Client credentials -------------------------------------------------

    @property
    def client_credentials(self) -> ClientCredentials | None:
        stored = self._store.get(CLIENT_CREDENTIALS_KEY)
        if not isinstance(stored, dict):
            return None
        client_id = clean_string(stored.get("clientId"))
        encrypted_secret = clean_string(stored.get("clientSecret"))
        if not client_id or not encrypted_secret:
            return None
        try:
            client_secret = decrypt_secret(encrypted_secret)
        except EncryptionError:
            logger.warning("Stored client secret could not be decrypted", client_id=client_id)
            return None
        updated_at = stored.get("updatedAt")
        return ClientCredentials(
            client_id=client_id,
            client_secret=client_secret,
            updated_at=updated_at if isinstance(updated_at, str) and updated_at else None,
        )

    def set_client_credentials(self, client_id: str, client_secret: str) -> ClientCredentials:
        """Store a new pair; the cached default credential belongs to the old pair."""
        credentials = ClientCredentials(
            client_id=client_id,
            client_secret=client_secret,
            updated_at=datetime.now(UTC).isoformat(),
        )
        self._store[CLIENT_CREDENTIALS_KEY] = {
            "clientId": credentials.client_id,
            "clientSecret": encrypt_secret(credentials.client_secret),
            "updatedAt": credentials.updated_at,
        }
        self.clear_default_credential_id()
        return credentials

    def clear_client_credentials(self) -> None:
        self._store.pop(CLIENT_CREDENTIALS_KEY, None)
        self.clear_default_credential_id()
