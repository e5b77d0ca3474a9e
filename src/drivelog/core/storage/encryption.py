"""Fernet-based field encryption for location-identifying data at rest.

Resolved street addresses pin down where a driver lives and works, so the
trip store keeps them encrypted. Coordinates and computed trip metrics stay
in plain columns for ordering and range queries.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts JSON-serializable values with Fernet.

    Usage::

        encryptor = FieldEncryptor(key="...")
        token = encryptor.encrypt("221B Baker Street")
        encryptor.decrypt(token)  # "221B Baker Street"
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: A valid Fernet key string, e.g. from :meth:`generate_key`.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode())
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value to a Fernet token string.

        ``None`` is stored as an empty string so nullable columns stay cheap.

        Raises:
            EncryptionError: If serialization or encryption fails.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
            return self._fernet.encrypt(plaintext).decode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc

    def decrypt(self, token: str) -> Any:
        """Decrypt a Fernet token string back to a Python object.

        Raises:
            EncryptionError: If the token is invalid or was made with another key.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
            return json.loads(plaintext)
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    def encrypt_text(self, text: str) -> str:
        """Encrypt an optional text field; blank text stays blank."""
        return self.encrypt(text) if text else ""

    def decrypt_text(self, token: str | None) -> str:
        """Inverse of :meth:`encrypt_text`."""
        value = self.decrypt(token or "")
        return str(value) if value else ""

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64-encoded 32-byte Fernet key."""
        return Fernet.generate_key().decode("utf-8")
