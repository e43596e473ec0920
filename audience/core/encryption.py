"""Encryption helpers for personal data stored at rest (visitor IPs)."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet

from audience.core.config import settings


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    Derives a valid 32-byte Fernet key from the config encryption_key
    using SHA-256, then base64-encodes it.

    Note: Changing encryption_key will make previously encrypted values
    undecryptable.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_value(value: str) -> str:
    """Encrypt a string value."""
    f = _get_fernet()
    return f.encrypt(value.encode()).decode()


def decrypt_value(encrypted: str) -> str:
    """Decrypt an encrypted string value."""
    f = _get_fernet()
    return f.decrypt(encrypted.encode()).decode()


def encrypt_ip(ip_address: str | None) -> str | None:
    """Encrypt an IP address for storage; empty input stays None."""
    if not ip_address:
        return None
    return encrypt_value(ip_address)
