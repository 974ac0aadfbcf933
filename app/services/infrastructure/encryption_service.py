"""
Encryption service for secrets kept in the session cookie.
Uses Fernet symmetric encryption; the cookie is only signed, not encrypted.
"""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EncryptionError(Exception):
    """Encryption or decryption failed."""

    pass


def derive_key(secret: str) -> str:
    """Fernet key derived from an arbitrary secret string."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")


def _get_fernet() -> Fernet:
    """
    Fernet instance for SESSION_ENCRYPTION_KEY, or for a key derived from
    SESSION_SECRET when no dedicated key is configured.

    Raises:
        EncryptionError: If the configured key is not a valid Fernet key
    """
    key = settings.SESSION_ENCRYPTION_KEY or derive_key(settings.SESSION_SECRET)
    try:
        return Fernet(key.encode("utf-8"))
    except ValueError as e:
        logger.error("Failed to initialize Fernet cipher", error=str(e))
        raise EncryptionError(f"Invalid encryption key: {e}") from e


def encrypt_secret(secret: str) -> str:
    """
    Encrypt a secret for storage in the session.

    Returns:
        str: Fernet token as text (JSON-safe)

    Raises:
        EncryptionError: If the secret is empty or encryption fails
    """
    if not secret or not isinstance(secret, str):
        raise EncryptionError("Secret must be a non-empty string")

    return _get_fernet().encrypt(secret.encode("utf-8")).decode("ascii")


def decrypt_secret(token: str) -> str:
    """
    Decrypt a secret read back from the session.

    Raises:
        EncryptionError: If the token is empty, tampered with, or was
            encrypted under another key
    """
    if not token or not isinstance(token, str):
        raise EncryptionError("Encrypted secret must be a non-empty string")

    try:
        return _get_fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError) as e:
        raise EncryptionError("Invalid or corrupted secret") from e
