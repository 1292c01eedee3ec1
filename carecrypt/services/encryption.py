"""
Application-layer encryption for sensitive clinical text fields.

Encrypted values are stored as self-describing envelopes:

    <iv_hex>:<ciphertext_base64>

- AES-256-CBC with PKCS7 padding, key is exactly 32 bytes
- a fresh random 16-byte IV per value, hex-encoded in front of the colon
- base64 ciphertext after the colon (never contains a colon)

Every path fails open: a missing/invalid key or a malformed envelope returns
the input unchanged and logs, so a bad or legacy value never breaks a read
or blocks a write.
"""

from __future__ import annotations

import base64
import logging
import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from carecrypt.config import settings

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
ENVELOPE_SEPARATOR = ":"

_HEX_RE = re.compile(r"[0-9a-fA-F]+")

PROBE_TEXT = "This is a test of the encryption system"


@dataclass(frozen=True)
class CipherConfig:
    """Raw key material for the envelope cipher."""

    key: bytes | None = field(default=None, repr=False)

    @classmethod
    def from_key(cls, key: str | bytes | None) -> CipherConfig:
        """Build a config from a text or binary key. Text keys are UTF-8 encoded."""
        if isinstance(key, str):
            key = key.encode("utf-8")
        return cls(key=key or None)

    @classmethod
    def from_settings(cls) -> CipherConfig:
        return cls.from_key(settings.ENCRYPTION_KEY)

    @property
    def key_length(self) -> int:
        return len(self.key) if self.key else 0

    @property
    def is_valid(self) -> bool:
        return self.key_length == KEY_LENGTH


def is_encrypted(value: Any) -> bool:
    """
    Return True if ``value`` looks like an envelope produced by ``encrypt``.

    Purely syntactic: exactly one colon with 32 hex characters before it.
    The ciphertext part is not inspected, so plaintext shaped like
    ``<32 hex chars>:<text>`` is a false positive. Decrypting such a value
    fails and returns it unchanged.
    """
    if not value or not isinstance(value, str):
        return False
    parts = value.split(ENVELOPE_SEPARATOR)
    if len(parts) != 2:
        return False
    iv_hex = parts[0]
    return len(iv_hex) == IV_LENGTH * 2 and _HEX_RE.fullmatch(iv_hex) is not None


class EncryptionService:
    """AES-256-CBC envelope encryption for individual fields and records."""

    def __init__(self, config: CipherConfig | None = None):
        self.config = config if config is not None else CipherConfig.from_settings()
        if not self.config.is_valid:
            logger.warning(
                "ENCRYPTION_KEY is missing or invalid (%d bytes, expected %d). "
                "Sensitive fields will be stored and returned unencrypted.",
                self.config.key_length,
                KEY_LENGTH,
            )

    @property
    def enabled(self) -> bool:
        return self.config.is_valid

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self.config.key), modes.CBC(iv))

    # -- single values ------------------------------------------------------

    def encrypt(self, plaintext: str | None) -> str | None:
        """Encrypt a string into an envelope. Falsy and non-string input is returned as-is."""
        if not plaintext or not isinstance(plaintext, str):
            return plaintext
        if not self.enabled:
            logger.warning("Cannot encrypt: invalid encryption key, value left in plaintext")
            return plaintext

        try:
            iv = os.urandom(IV_LENGTH)
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = self._cipher(iv).encryptor()
            ciphertext = encryptor.update(data) + encryptor.finalize()
        except ValueError as exc:
            logger.error("Encryption failed, value left in plaintext: %s", exc)
            return plaintext

        return iv.hex() + ENVELOPE_SEPARATOR + base64.b64encode(ciphertext).decode("ascii")

    def decrypt(self, envelope: str | None) -> str | None:
        """Decrypt an envelope. Malformed or non-string input is returned unchanged."""
        if not envelope or not isinstance(envelope, str):
            return envelope
        if not self.enabled:
            logger.warning("Cannot decrypt: invalid encryption key, value returned as stored")
            return envelope

        try:
            return self._open(envelope)
        except ValueError as exc:
            # bad hex, IV size, base64, block length, padding and UTF-8
            # errors are all ValueError subclasses
            logger.error("Decryption failed, value returned as stored: %s", exc)
            return envelope

    def _open(self, envelope: str) -> str:
        if envelope.count(ENVELOPE_SEPARATOR) != 1:
            raise ValueError("Invalid encrypted data format")
        iv_hex, _, encoded = envelope.partition(ENVELOPE_SEPARATOR)

        iv = bytes.fromhex(iv_hex)
        ciphertext = base64.b64decode(encoded, validate=True)

        decryptor = self._cipher(iv).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")

    def safe_decrypt(self, value: str | None) -> str | None:
        """Decrypt only values that look encrypted; legacy plaintext passes through."""
        if not value:
            return value
        return self.decrypt(value) if is_encrypted(value) else value

    # -- records ------------------------------------------------------------

    def encrypt_object(self, record: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
        """Return a copy of ``record`` with the listed non-empty string fields encrypted."""
        result = dict(record)
        for name in fields:
            value = result.get(name)
            if value and isinstance(value, str):
                result[name] = self.encrypt(value)
        return result

    def decrypt_object(self, record: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
        """Return a copy of ``record`` with the listed encrypted fields decrypted."""
        result = dict(record)
        for name in fields:
            value = result.get(name)
            if isinstance(value, str) and is_encrypted(value):
                result[name] = self.decrypt(value)
        return result


# ---------------------------------------------------------------------------
# Process-wide default service
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_encryption_service() -> EncryptionService:
    """Service built from the current settings, created on first use."""
    return EncryptionService(CipherConfig.from_settings())


def reset_encryption_service() -> None:
    """Forget the default service so the next call re-reads settings."""
    get_encryption_service.cache_clear()


def encrypt(plaintext: str | None) -> str | None:
    return get_encryption_service().encrypt(plaintext)


def decrypt(envelope: str | None) -> str | None:
    return get_encryption_service().decrypt(envelope)


def safe_decrypt(value: str | None) -> str | None:
    return get_encryption_service().safe_decrypt(value)


def encrypt_object(record: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    return get_encryption_service().encrypt_object(record, fields)


def decrypt_object(record: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    return get_encryption_service().decrypt_object(record, fields)


def encryption_status(service: EncryptionService | None = None) -> dict[str, Any]:
    """
    Round-trip a probe string through the service and report whether
    encryption is actually active. The envelope is truncated in the report.
    """
    service = service or get_encryption_service()

    envelope = service.encrypt(PROBE_TEXT) or ""
    looks_encrypted = is_encrypted(envelope)
    decrypted = service.decrypt(envelope) or ""
    working = looks_encrypted and decrypted == PROBE_TEXT

    return {
        "key_valid": service.enabled,
        "key_length": service.config.key_length,
        "working": working,
        "test_text": PROBE_TEXT,
        "encrypted_preview": f"{envelope[:20]}..." if envelope else "",
        "decrypted_text": decrypted,
        "message": (
            "Encryption is working correctly"
            if working
            else "Encryption is NOT working correctly. Check the ENCRYPTION_KEY environment variable."
        ),
    }
