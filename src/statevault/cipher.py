"""AES-256-GCM content sealing.

Sealed layout (bit-exact): ``nonce(12) || ciphertext || tag(16)``.
A fresh random nonce is drawn per call, so each content key is single-use
per seal.
"""
from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailed, InvalidKeyLength, TooShort

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
MIN_SEALED_LENGTH = NONCE_LENGTH + TAG_LENGTH


def generate_content_key() -> bytes:
    return os.urandom(KEY_LENGTH)


def _check_key(key: bytes) -> None:
    if len(key) != KEY_LENGTH:
        raise InvalidKeyLength(KEY_LENGTH, len(key), "content key")


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """Seal ``plaintext`` under ``key``.

    AESGCM appends the tag to the ciphertext, so prefixing the nonce gives
    the wire layout directly.
    """
    _check_key(key)
    nonce = os.urandom(NONCE_LENGTH)
    return nonce + AESGCM(bytes(key)).encrypt(nonce, bytes(plaintext), None)


def decrypt(sealed: bytes, key: bytes) -> bytes:
    _check_key(key)
    if len(sealed) < MIN_SEALED_LENGTH:
        raise TooShort(MIN_SEALED_LENGTH, len(sealed))
    nonce, body = bytes(sealed[:NONCE_LENGTH]), bytes(sealed[NONCE_LENGTH:])
    try:
        return AESGCM(bytes(key)).decrypt(nonce, body, None)
    except InvalidTag as exc:
        raise AuthenticationFailed() from exc


__all__ = [
    "KEY_LENGTH",
    "NONCE_LENGTH",
    "TAG_LENGTH",
    "MIN_SEALED_LENGTH",
    "generate_content_key",
    "encrypt",
    "decrypt",
]
