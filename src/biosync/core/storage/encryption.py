"""Fernet encryption for stored life-log records.

Every value in the key-value store is a JSON document sealed with Fernet.
Several comma-separated keys may be configured: the first one seals new
records and all of them can open existing ones, which allows key rotation.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when a record cannot be sealed or opened."""


class RecordCipher:
    """Seals JSON-serialisable records into Fernet tokens and back.

    Usage::

        cipher = RecordCipher(RecordCipher.generate_key())
        token = cipher.seal({"date": "2026-02-01", "items": []})
        cipher.open(token)  # {"date": "2026-02-01", "items": []}
    """

    def __init__(self, keys: str) -> None:
        """Initialise from one key or a comma-separated list (newest first).

        Raises:
            EncryptionError: If no key is given or a key is malformed.
        """
        parts = [k.strip() for k in (keys or "").split(",") if k.strip()]
        if not parts:
            raise EncryptionError("Encryption key must not be empty")
        try:
            fernets = [Fernet(k.encode("utf-8")) for k in parts]
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc
        self._fernet = MultiFernet(fernets)
        self.key_count = len(fernets)

    def seal(self, value: Any) -> str:
        try:
            plaintext = json.dumps(value, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Record is not JSON-serialisable: {exc}") from exc
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def open(self, token: str) -> Any:
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or unknown key") from exc
        return json.loads(plaintext)

    def rotate(self, token: str) -> str:
        """Re-seal a token under the newest key."""
        try:
            return self._fernet.rotate(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or unknown key") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")
