"""Commitment hashing: state, ciphertext and metadata digests.

All digests are keccak-256, surfaced as lowercase ``0x``-prefixed hex and
compared case-insensitively. Verification raises ``CommitmentMismatch``;
it never returns a boolean.
"""
from __future__ import annotations

from typing import Any, Optional, Union

from Crypto.Hash import keccak

from .canonical import canonicalize
from .capsule import Capsule
from .errors import CommitmentMismatch

ZERO_HASH = "0x" + "0" * 64

BytesLike = Union[bytes, bytearray, memoryview]


def hash_bytes(data: BytesLike) -> str:
    """keccak-256 of ``data`` as 0x-prefixed lowercase hex."""
    digest = keccak.new(digest_bits=256)
    digest.update(bytes(data))
    return "0x" + digest.hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_canonical(value: Any) -> str:
    """Digest of the canonical encoding of ``value``."""
    return hash_bytes(canonicalize(value))


def normalize_hash(value: str) -> str:
    return value.lower()


def hashes_equal(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def is_zero_hash(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.lower() == ZERO_HASH


# =============================================================================
# COMMITMENT ROLES
# =============================================================================

def state_commitment(capsule: Capsule) -> str:
    return hash_canonical(capsule.to_dict())


def ciphertext_commitment(ciphertext: BytesLike) -> str:
    return hash_bytes(ciphertext)


def metadata_commitment(value: Any) -> str:
    """Digest of auxiliary metadata; ``None`` maps to ``ZERO_HASH``."""
    if value is None:
        return ZERO_HASH
    return hash_canonical(value)


def _check(kind: str, expected: str, computed: str) -> None:
    if not hashes_equal(expected, computed):
        raise CommitmentMismatch(kind, expected, computed)


def verify_state_commitment(capsule: Capsule, expected: str) -> None:
    _check("state", expected, state_commitment(capsule))


def verify_ciphertext_commitment(ciphertext: BytesLike, expected: str) -> None:
    _check("ciphertext", expected, ciphertext_commitment(ciphertext))


def verify_metadata_commitment(value: Any, expected: str) -> None:
    _check("metadata", expected, metadata_commitment(value))


__all__ = [
    "ZERO_HASH",
    "hash_bytes",
    "hash_text",
    "hash_canonical",
    "normalize_hash",
    "hashes_equal",
    "is_zero_hash",
    "state_commitment",
    "ciphertext_commitment",
    "metadata_commitment",
    "verify_state_commitment",
    "verify_ciphertext_commitment",
    "verify_metadata_commitment",
]
