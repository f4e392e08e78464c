"""Key envelopes: addressing and transport-agnostic byte form.

An envelope is a content key wrapped for one recipient. It is safe to store
anywhere; confidentiality comes from the wrap, not the transport.

Wire form is a JSON object with four 0x-hex string fields::

    {"checkpointId": "0x..", "wrappedKey": "0x..", "nonce": "0x..",
     "senderPublicKey": "0x.."}
"""
from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any

from .commitment import hash_text
from .errors import MalformedEnvelope

WRAP_NONCE_LENGTH = 24
PUBLIC_KEY_LENGTH = 32

_FIELDS = ("checkpointId", "wrappedKey", "nonce", "senderPublicKey")


def to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def from_hex(text: str) -> bytes:
    """Decode 0x-prefixed (or bare) hex; raises ValueError on bad input."""
    body = text[2:] if text[:2] in ("0x", "0X") else text
    return bytes.fromhex(body)


# =============================================================================
# ENVELOPE
# =============================================================================

@dataclass(frozen=True)
class KeyEnvelope:
    """A content key wrapped for one recipient.

    ``checkpoint_id`` is empty until the caller binds the envelope to the
    checkpoint it was wrapped for.
    """
    checkpoint_id: str
    wrapped_key: bytes
    nonce: bytes
    sender_public_key: bytes

    def bind(self, checkpoint_id: str) -> "KeyEnvelope":
        return replace(self, checkpoint_id=checkpoint_id)

    @property
    def is_bound(self) -> bool:
        return bool(self.checkpoint_id)

    def to_dict(self) -> dict[str, str]:
        return {
            "checkpointId": self.checkpoint_id,
            "wrappedKey": to_hex(self.wrapped_key),
            "nonce": to_hex(self.nonce),
            "senderPublicKey": to_hex(self.sender_public_key),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "KeyEnvelope":
        if not isinstance(data, dict):
            raise MalformedEnvelope("envelope must be a JSON object")
        for name in _FIELDS:
            value = data.get(name)
            if not value:
                raise MalformedEnvelope(f"missing field '{name}'")
            if not isinstance(value, str):
                raise MalformedEnvelope(f"field '{name}' must be a hex string")

        decoded: dict[str, bytes] = {}
        for name in _FIELDS:
            try:
                decoded[name] = from_hex(data[name])
            except ValueError:
                raise MalformedEnvelope(f"field '{name}' is not valid hex") from None

        if len(decoded["nonce"]) != WRAP_NONCE_LENGTH:
            raise MalformedEnvelope(
                f"nonce must be {WRAP_NONCE_LENGTH} bytes, got {len(decoded['nonce'])}"
            )
        if len(decoded["senderPublicKey"]) != PUBLIC_KEY_LENGTH:
            raise MalformedEnvelope(
                f"sender public key must be {PUBLIC_KEY_LENGTH} bytes, "
                f"got {len(decoded['senderPublicKey'])}"
            )
        return cls(
            checkpoint_id=data["checkpointId"],
            wrapped_key=decoded["wrappedKey"],
            nonce=decoded["nonce"],
            sender_public_key=decoded["senderPublicKey"],
        )


# =============================================================================
# CODEC
# =============================================================================

def envelope_id(collection_id: str, checkpoint_id: str, recipient_id: str) -> str:
    """Deterministic envelope address.

    Publisher and consumer both recompute this; nothing is stored to look
    it up.
    """
    preimage = f"{collection_id.lower()}:{checkpoint_id.lower()}:{recipient_id.lower()}"
    return hash_text(preimage)


def serialize_envelope(envelope: KeyEnvelope) -> bytes:
    return json.dumps(envelope.to_dict()).encode("utf-8")


def deserialize_envelope(data: bytes) -> KeyEnvelope:
    try:
        decoded = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedEnvelope(f"invalid JSON: {exc}") from exc
    return KeyEnvelope.from_dict(decoded)


__all__ = [
    "WRAP_NONCE_LENGTH",
    "PUBLIC_KEY_LENGTH",
    "KeyEnvelope",
    "to_hex",
    "from_hex",
    "envelope_id",
    "serialize_envelope",
    "deserialize_envelope",
]
