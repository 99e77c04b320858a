"""
Secrets management and encryption for store credentials.

CRITICAL SECURITY REQUIREMENTS:
- NEVER store Shopify access tokens in plaintext in DB, logs, or responses
- All encrypt/decrypt operations MUST use this module
- Any variable name containing token/secret/key MUST be redacted from logs

Encryption uses Fernet with a key derived (PBKDF2) from the ENCRYPTION_KEY
environment variable.

Usage:
    from shopinsights.platform.secrets import encrypt_secret, decrypt_secret, redact_secrets

    encrypted = await encrypt_secret(access_token)
    access_token = await decrypt_secret(encrypted)
    safe_data = redact_secrets({"access_token": "shpat_123", "shop": "demo"})
"""

import base64
import hashlib
import logging
import os
import re
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Patterns for detecting secrets in logs
SECRET_PATTERNS = [
    re.compile(r"(api[_-]?key)", re.IGNORECASE),
    re.compile(r"(secret)", re.IGNORECASE),
    re.compile(r"(access[_-]?token)", re.IGNORECASE),
    re.compile(r"(password)", re.IGNORECASE),
    re.compile(r"(authorization)", re.IGNORECASE),
    re.compile(r"(encryption[_-]?key)", re.IGNORECASE),
    re.compile(r"(hmac)", re.IGNORECASE),
    re.compile(r"(database[_-]?url)", re.IGNORECASE),
    re.compile(r"(credentials)", re.IGNORECASE),
]

# Common secret value patterns to redact
SECRET_VALUE_PATTERNS = [
    re.compile(r"(Bearer\s+[a-zA-Z0-9._-]+)"),  # Bearer tokens
    re.compile(r"(shpat_[a-fA-F0-9]{32,})"),  # Shopify access tokens
    re.compile(r"(shpca_[a-fA-F0-9]{32,})"),  # Shopify custom app tokens
    re.compile(r"(shpss_[a-zA-Z0-9]{24,})"),  # Shopify shared secrets
]

REDACTED_VALUE = "[REDACTED]"

_KDF_SALT = b"shopify-insights-salt"
_KDF_ITERATIONS = 100000


class EncryptionError(Exception):
    """Raised when encryption/decryption operations fail."""
    pass


class SecretsManager:
    """Encrypts and decrypts secrets with a Fernet key derived from ENCRYPTION_KEY."""

    def __init__(self):
        self._fernet: Optional[Fernet] = None

    def _get_fernet(self) -> Fernet:
        """Lazily derive the Fernet cipher; retried until ENCRYPTION_KEY is set."""
        if self._fernet is not None:
            return self._fernet

        encryption_key = os.getenv("ENCRYPTION_KEY")
        if not encryption_key:
            raise EncryptionError(
                "No encryption configuration found. Set ENCRYPTION_KEY."
            )

        derived_key = hashlib.pbkdf2_hmac(
            "sha256",
            encryption_key.encode(),
            _KDF_SALT,
            _KDF_ITERATIONS,
            dklen=32,  # Fernet requires 32 bytes
        )
        self._fernet = Fernet(base64.urlsafe_b64encode(derived_key))
        logger.info("Local encryption initialized")
        return self._fernet

    def reset(self) -> None:
        """Forget the derived key (key rotation, tests)."""
        self._fernet = None

    async def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string.

        Raises:
            ValueError: If plaintext is empty
            EncryptionError: If no key is configured
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")

        encrypted = self._get_fernet().encrypt(plaintext.encode("utf-8"))
        return encrypted.decode("utf-8")

    async def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt an encrypted string.

        Raises:
            ValueError: If ciphertext is empty
            EncryptionError: On wrong key or corrupted ciphertext
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty string")

        try:
            decrypted = self._get_fernet().decrypt(ciphertext.encode("utf-8"))
        except InvalidToken:
            raise EncryptionError("Invalid ciphertext or wrong encryption key")
        return decrypted.decode("utf-8")


# Singleton instance
_secrets_manager = SecretsManager()


async def encrypt_secret(plaintext: str) -> str:
    """Encrypt a secret for storage."""
    return await _secrets_manager.encrypt(plaintext)


async def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a stored secret."""
    return await _secrets_manager.decrypt(ciphertext)


def reset_secrets_manager() -> None:
    _secrets_manager.reset()


def is_secret_key(key: str) -> bool:
    """Check if a dictionary key likely contains a secret."""
    return any(pattern.search(key) for pattern in SECRET_PATTERNS)


def redact_value(value: Any) -> Any:
    """Redact secret patterns from a string value."""
    if not isinstance(value, str):
        return value

    result = value
    for pattern in SECRET_VALUE_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)

    return result


def redact_secrets(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact secrets from a data structure.

    Use this before logging any data that might contain secrets.
    """
    # Prevent infinite recursion
    if _depth > 10:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_secret_key(str(key)):
                result[key] = REDACTED_VALUE
            else:
                result[key] = redact_secrets(value, _depth + 1)
        return result

    if isinstance(data, list):
        return [redact_secrets(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_value(data)

    return data


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts secrets from log records.

    Usage:
        handler.addFilter(SecretRedactingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_secrets(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True
