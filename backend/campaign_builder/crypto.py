"""
Encryption at rest for the Google service-account private key.

Uses Fernet symmetric encryption from the `cryptography` package, keyed by
the ENCRYPTION_KEY setting. Without a key (development only) values are
stored as-is so local setup needs no extra secrets.
"""

import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from campaign_builder.config import Settings, get_settings

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "fernet:"


@lru_cache
def _fernet_for(key: str) -> Fernet:
    try:
        return Fernet(key.encode())
    except (ValueError, TypeError) as exc:
        raise RuntimeError(f"Invalid ENCRYPTION_KEY: {exc}") from exc


def _cipher(settings: Optional[Settings]) -> Optional[Fernet]:
    settings = settings or get_settings()
    if settings.encryption_key:
        return _fernet_for(settings.encryption_key)
    if settings.is_production:
        raise RuntimeError(
            "ENCRYPTION_KEY must be set in production. "
            "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        )
    logger.warning("ENCRYPTION_KEY not set; service-account key stored in plaintext (development only).")
    return None


def encrypt_value(plaintext: Optional[str], settings: Optional[Settings] = None) -> Optional[str]:
    if plaintext is None:
        return None
    cipher = _cipher(settings)
    if cipher is None:
        return plaintext
    return ENCRYPTED_PREFIX + cipher.encrypt(plaintext.encode()).decode()


def decrypt_value(stored: Optional[str], settings: Optional[Settings] = None) -> Optional[str]:
    """Values without the prefix were written before a key was configured and come back unchanged."""
    if stored is None or not stored.startswith(ENCRYPTED_PREFIX):
        return stored
    cipher = _cipher(settings)
    if cipher is None:
        raise RuntimeError("Stored value is encrypted but ENCRYPTION_KEY is not set")
    try:
        return cipher.decrypt(stored[len(ENCRYPTED_PREFIX):].encode()).decode()
    except InvalidToken as exc:
        raise RuntimeError("Could not decrypt stored value; ENCRYPTION_KEY may have changed") from exc
