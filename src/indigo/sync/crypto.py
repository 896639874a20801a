"""
End-to-end encryption for cloud sync.

AES-256-GCM with a PBKDF2-HMAC-SHA256 key derived from the user's
passphrase. Salt and IV are fresh for every call, and the key is
re-derived every time rather than cached. The passphrase never leaves
the device and nothing here persists key material.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .models import EncryptedPayload

logger = logging.getLogger("indigo.sync.crypto")

PBKDF2_ITERATIONS = 100_000
KEY_LENGTH = 32
SALT_LENGTH = 16
IV_LENGTH = 12


class DecryptionError(Exception):
    """Raised when a payload cannot be decrypted with the given passphrase."""


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    """Derive a 256-bit AES key with PBKDF2-HMAC-SHA256.

    Args:
        passphrase: The user's sync passphrase.
        salt: Per-payload random salt.

    Returns:
        Raw key bytes.
    """
    kdf = PBKDF2HMAC(
        algorithm=SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(plaintext: str, passphrase: str) -> EncryptedPayload:
    """Encrypt a plaintext string with a passphrase.

    Args:
        plaintext: Text to encrypt.
        passphrase: The user's sync passphrase.

    Returns:
        EncryptedPayload with base64 ciphertext (tag appended), IV and salt.
    """
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(passphrase, salt)

    ciphertext = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)

    return EncryptedPayload(
        ciphertext=_b64encode(ciphertext),
        iv=_b64encode(iv),
        salt=_b64encode(salt),
    )


def decrypt(payload: EncryptedPayload, passphrase: str) -> str:
    """Decrypt an encrypted payload with a passphrase.

    Args:
        payload: Payload produced by :func:`encrypt`.
        passphrase: The passphrase used to encrypt it.

    Returns:
        The original plaintext.

    Raises:
        DecryptionError: Wrong passphrase, tampered ciphertext, or a
            payload that is not valid base64.
    """
    try:
        salt = _b64decode(payload.salt)
        iv = _b64decode(payload.iv)
        ciphertext = _b64decode(payload.ciphertext)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError(f"Malformed encrypted payload: {exc}") from exc

    key = _derive_key(passphrase, salt)
    try:
        plain = AESGCM(key).decrypt(iv, ciphertext, None)
    except InvalidTag as exc:
        raise DecryptionError(
            "Decryption failed: wrong passphrase or corrupted data"
        ) from exc
    except ValueError as exc:
        raise DecryptionError(f"Malformed encrypted payload: {exc}") from exc

    try:
        return plain.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError(f"Decrypted data is not UTF-8: {exc}") from exc


def hash_data(data: str) -> str:
    """SHA-256 hex digest of a plaintext, for change detection only."""
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def validate_passphrase(payload: EncryptedPayload, passphrase: str) -> bool:
    """Check whether a passphrase decrypts a payload.

    Args:
        payload: Any payload previously produced by :func:`encrypt`.
        passphrase: Candidate passphrase.

    Returns:
        True if decryption succeeds.
    """
    try:
        decrypt(payload, passphrase)
        return True
    except DecryptionError:
        logger.debug("Passphrase validation failed")
        return False
