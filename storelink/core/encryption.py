"""Encryption helpers for access tokens stored at rest."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet

from storelink.core.config import settings


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    Derives a valid 32-byte Fernet key from the config encryption_key
    using SHA-256, then base64-encodes it.

    Note: Changing encryption_key will make every stored connection's
    access token undecryptable; those shops have to reconnect.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_token(token: str) -> str:
    """Encrypt an access token."""
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt an encrypted access token."""
    return _get_fernet().decrypt(encrypted.encode()).decode()
