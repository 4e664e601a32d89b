"""
Decryption of credentials stored encrypted in property files.

Values are AES-GCM encrypted and base64 encoded as a 12-byte nonce
followed by the ciphertext and tag. The secret comes from the
``POSQA_SECRET_KEY`` environment variable and is fitted to a 16-byte
AES-128 key. A value is treated as encrypted when it is wrapped in
``ENC(...)`` or read from a ``*.encrypted`` property.
"""

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import ConfigurationError


SECRET_KEY_ENV = "POSQA_SECRET_KEY"
KEY_LENGTH = 16
NONCE_LENGTH = 12
ENCRYPTED_PREFIX = "ENC("
ENCRYPTED_SUFFIX = ")"


def secret_key(secret: Optional[str] = None) -> bytes:
    """Key bytes from ``secret`` or the environment, zero-padded or cut to 16 bytes."""
    if secret is None:
        secret = os.getenv(SECRET_KEY_ENV)
    if not secret:
        raise ConfigurationError(
            f"Encrypted value found but {SECRET_KEY_ENV} is not set", key=SECRET_KEY_ENV
        )
    raw = secret.encode("utf-8")[:KEY_LENGTH]
    return raw.ljust(KEY_LENGTH, b"\0")


def is_encrypted(value: Optional[str]) -> bool:
    if not value:
        return False
    value = value.strip()
    return value.startswith(ENCRYPTED_PREFIX) and value.endswith(ENCRYPTED_SUFFIX)


def encrypt(plain_text: str, secret: Optional[str] = None) -> str:
    """Encrypt ``plain_text``; the result is what ``decrypt`` accepts."""
    nonce = os.urandom(NONCE_LENGTH)
    data = AESGCM(secret_key(secret)).encrypt(nonce, plain_text.encode("utf-8"), None)
    return base64.b64encode(nonce + data).decode("ascii")


def decrypt(encrypted: str, secret: Optional[str] = None, key: Optional[str] = None) -> str:
    """
    Decrypt a base64 AES-GCM value, with or without the ``ENC(...)`` wrapper.

    Raises:
        ConfigurationError: when the secret is missing or the value cannot be
            decrypted with it. ``key`` names the property in the error.
    """
    value = encrypted.strip()
    if is_encrypted(value):
        value = value[len(ENCRYPTED_PREFIX):-len(ENCRYPTED_SUFFIX)].strip()

    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(f"Encrypted value is not valid base64: {e}", key=key) from e
    if len(raw) <= NONCE_LENGTH:
        raise ConfigurationError("Encrypted value is too short", key=key)

    try:
        plain = AESGCM(secret_key(secret)).decrypt(raw[:NONCE_LENGTH], raw[NONCE_LENGTH:], None)
    except InvalidTag as e:
        raise ConfigurationError("Failed to decrypt value, wrong secret key?", key=key) from e
    return plain.decode("utf-8")


def reveal(value: Optional[str], key: Optional[str] = None, secret: Optional[str] = None) -> Optional[str]:
    """Decrypt ``value`` when it is marked as encrypted, otherwise return it unchanged."""
    if value is None:
        return None
    if is_encrypted(value) or (key is not None and key.lower().endswith(".encrypted")):
        return decrypt(value, secret=secret, key=key)
    return value
