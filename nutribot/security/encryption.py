"""Field-level AES-256-GCM encryption for health data at rest.

Encrypts sensitive fields before storage and decrypts on read.
Uses 12-byte random nonces (96-bit, NIST recommended for GCM).
Stored format: base64(nonce || ciphertext || tag).

Usage:
    encryptor = build_field_encryptor(settings.security)

    token = encryptor.encrypt_json({"age": 34, "weight": 70})
    data = encryptor.decrypt_json(token)
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from nutribot.config import SecuritySettings

logger = logging.getLogger(__name__)

_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM


class FieldEncryptor:
    """AES-256-GCM encryptor for individual database fields.

    Thread-safe and stateless (each encrypt call generates a fresh nonce).
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            msg = f"AES-256 requires a 32-byte key, got {len(key)} bytes"
            raise ValueError(msg)
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string field. Returns base64(nonce + ciphertext + tag)."""
        nonce = os.urandom(_NONCE_SIZE)
        ct = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ct).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Decrypt a base64-encoded encrypted field.

        Raises ValueError for malformed, truncated, or tampered tokens.
        """
        try:
            raw = base64.b64decode(token, validate=True)
        except binascii.Error as exc:
            msg = "Invalid encrypted token: not base64"
            raise ValueError(msg) from exc
        if len(raw) < _NONCE_SIZE + 16:  # nonce + minimum GCM tag
            msg = "Invalid encrypted token: too short"
            raise ValueError(msg)
        nonce = raw[:_NONCE_SIZE]
        ct = raw[_NONCE_SIZE:]
        try:
            return self._aesgcm.decrypt(nonce, ct, None).decode("utf-8")
        except InvalidTag as exc:
            msg = "Invalid encrypted token: authentication failed"
            raise ValueError(msg) from exc

    # ── JSON documents ───────────────────────────────────────────────

    def encrypt_json(self, value: Any) -> str:
        """Serialize to JSON and encrypt."""
        return self.encrypt(json.dumps(value, ensure_ascii=False, default=str))

    def decrypt_json(self, token: str | None, default: Any = None) -> Any:
        """Decrypt and parse a JSON document. None decrypts to `default`."""
        if token is None:
            return default
        return json.loads(self.decrypt(token))


def load_key(security: SecuritySettings) -> bytes:
    """Decode the configured base64 key, or fall back to an ephemeral one."""
    raw = security.encryption_key
    if not raw:
        logger.warning("ENCRYPTION_KEY not set — using a random ephemeral key (data won't survive restarts)")
        return os.urandom(32)
    try:
        key = base64.b64decode(raw, validate=True)
    except binascii.Error:
        logger.warning("ENCRYPTION_KEY is not valid base64 — using a random ephemeral key")
        return os.urandom(32)
    if len(key) != 32:
        logger.warning("ENCRYPTION_KEY decoded to %d bytes (expected 32) — using a random ephemeral key", len(key))
        return os.urandom(32)
    return key


def build_field_encryptor(security: SecuritySettings) -> FieldEncryptor:
    return FieldEncryptor(load_key(security))
