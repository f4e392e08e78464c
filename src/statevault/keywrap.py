"""Asymmetric key wrapping (X25519 + XSalsa20-Poly1305 box).

``wrap_key`` always embeds the sender public key derived from the sender
secret key. ``unwrap_key`` collapses every failure into ``UnwrapFailed`` so
an observer cannot tell a wrong key from corrupted data.
"""
from __future__ import annotations

from dataclasses import dataclass

from nacl.exceptions import CryptoError
from nacl.public import Box, PrivateKey, PublicKey
from nacl.utils import random as random_bytes

from .envelope import PUBLIC_KEY_LENGTH, WRAP_NONCE_LENGTH, KeyEnvelope
from .errors import InvalidKeyLength, UnwrapFailed

SECRET_KEY_LENGTH = 32
CONTENT_KEY_LENGTH = 32


@dataclass(frozen=True)
class KeyPair:
    public_key: bytes
    secret_key: bytes

    @classmethod
    def from_secret_key(cls, secret_key: bytes) -> "KeyPair":
        _check_length(secret_key, SECRET_KEY_LENGTH, "secret key")
        private = PrivateKey(bytes(secret_key))
        return cls(public_key=bytes(private.public_key), secret_key=bytes(private))

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key.hex()!r}, secret_key=<redacted>)"


def _check_length(value: bytes, expected: int, what: str) -> None:
    if len(value) != expected:
        raise InvalidKeyLength(expected, len(value), what)


def generate_key_pair() -> KeyPair:
    private = PrivateKey.generate()
    return KeyPair(public_key=bytes(private.public_key), secret_key=bytes(private))


def wrap_key(
    content_key: bytes,
    recipient_public_key: bytes,
    sender_secret_key: bytes,
) -> KeyEnvelope:
    """Wrap ``content_key`` for one recipient.

    Returns an unbound envelope (``checkpoint_id == ""``); bind it with
    :meth:`KeyEnvelope.bind` before delivery.
    """
    _check_length(content_key, CONTENT_KEY_LENGTH, "content key")
    _check_length(recipient_public_key, PUBLIC_KEY_LENGTH, "recipient public key")
    _check_length(sender_secret_key, SECRET_KEY_LENGTH, "sender secret key")

    sender = PrivateKey(bytes(sender_secret_key))
    box = Box(sender, PublicKey(bytes(recipient_public_key)))
    nonce = random_bytes(WRAP_NONCE_LENGTH)
    sealed = box.encrypt(bytes(content_key), nonce)
    return KeyEnvelope(
        checkpoint_id="",
        wrapped_key=sealed.ciphertext,
        nonce=nonce,
        sender_public_key=bytes(sender.public_key),
    )


def unwrap_key(envelope: KeyEnvelope, recipient_secret_key: bytes) -> bytes:
    _check_length(recipient_secret_key, SECRET_KEY_LENGTH, "recipient secret key")
    try:
        box = Box(
            PrivateKey(bytes(recipient_secret_key)),
            PublicKey(bytes(envelope.sender_public_key)),
        )
        content_key = box.decrypt(bytes(envelope.wrapped_key), bytes(envelope.nonce))
    except (CryptoError, ValueError, TypeError):
        raise UnwrapFailed() from None
    if len(content_key) != CONTENT_KEY_LENGTH:
        raise UnwrapFailed()
    return content_key


__all__ = [
    "KeyPair",
    "generate_key_pair",
    "wrap_key",
    "unwrap_key",
]
