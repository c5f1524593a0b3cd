"""Encryption of OAuth tokens at rest.

Access and refresh tokens are Fernet-encrypted before they reach the
`user_google_tokens` table. The Fernet key is derived from SECRET_KEY and
ENCRYPTION_SALT with PBKDF2-HMAC-SHA256 (480,000 iterations), so changing
either value makes stored tokens unreadable and users must reconnect.
"""

from __future__ import annotations

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

# Module-level cipher instance (initialized on first use)
_fernet: Fernet | None = None


def _get_fernet() -> Fernet:
    global _fernet

    if _fernet is None:
        from fitness_calendar.config import get_settings

        settings = get_settings()
        _fernet = _create_fernet(settings.secret_key, settings.encryption_salt)

    return _fernet


def _create_fernet(secret_key: str, salt: str) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt.encode("utf-8"),
        iterations=480_000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(secret_key.encode("utf-8")))
    return Fernet(key)


def encrypt_token(plaintext: str | None) -> str:
    """Encrypt a token for storage. Empty input encrypts to ""."""
    if not plaintext:
        return ""

    return _get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_token(ciphertext: str | None) -> str:
    """Decrypt a stored token.

    Raises:
        ValueError: If the ciphertext was produced with another key
    """
    if not ciphertext:
        return ""

    try:
        return _get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        logger.error("Failed to decrypt token: invalid token or key")
        raise ValueError("Failed to decrypt token") from e


def reset_cipher() -> None:
    """Reset the cached cipher instance.

    Call this if the configuration changes (e.g., in tests).
    """
    global _fernet
    _fernet = None
