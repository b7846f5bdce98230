"""Symmetric encryption utilities for protecting stored provider tokens."""

from __future__ import annotations

import binascii
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from lastfriends.core.config import SecuritySettings
from lastfriends.core.errors import (
    ConfigurationError,
    DecryptionError,
    MalformedCiphertextError,
)

_KEY_BYTES = 32
_IV_BYTES = 12
_DELIMITER = ":"


class CredentialVault:
    """Encrypt and decrypt token strings with AES-256-GCM.

    Ciphertexts are encoded as ``ivHex:cipherHex`` where the cipher part
    includes the authentication tag. Callers must treat them as opaque.
    """

    def __init__(self, *, key_hex: str | None) -> None:
        if not key_hex:
            raise ConfigurationError("AUTH_ENCRYPTION_KEY must be provided.")
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as exc:
            raise ConfigurationError(
                "AUTH_ENCRYPTION_KEY must be a hex string."
            ) from exc
        if len(key) != _KEY_BYTES:
            raise ConfigurationError(
                "AUTH_ENCRYPTION_KEY must be a 64-character hex string (32 bytes)."
            )
        self._aead = AESGCM(key)

    @classmethod
    def from_settings(cls, settings: SecuritySettings) -> "CredentialVault":
        return cls(key_hex=settings.auth_encryption_key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string under a fresh IV."""
        iv = os.urandom(_IV_BYTES)
        cipher = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{iv.hex()}{_DELIMITER}{cipher.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a ciphertext produced by :meth:`encrypt`."""
        parts = ciphertext.split(_DELIMITER)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise MalformedCiphertextError("Ciphertext must have the form iv:cipher.")
        try:
            iv = binascii.unhexlify(parts[0])
            cipher = binascii.unhexlify(parts[1])
        except (binascii.Error, ValueError) as exc:
            raise MalformedCiphertextError("Ciphertext is not hex encoded.") from exc
        if len(iv) != _IV_BYTES:
            raise MalformedCiphertextError("Ciphertext IV has the wrong length.")

        try:
            plaintext = self._aead.decrypt(iv, cipher, None)
        except InvalidTag as exc:
            raise DecryptionError(
                "Failed to decrypt token; wrong key or corrupted ciphertext."
            ) from exc
        return plaintext.decode("utf-8")


def generate_session_token() -> str:
    """Return a new opaque session token (32 random bytes, hex encoded)."""
    return secrets.token_hex(_KEY_BYTES)


def generate_encryption_key() -> str:
    """Return a fresh value suitable for ``AUTH_ENCRYPTION_KEY``."""
    return secrets.token_hex(_KEY_BYTES)


__all__ = ["CredentialVault", "generate_encryption_key", "generate_session_token"]
