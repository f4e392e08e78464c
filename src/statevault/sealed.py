"""Pure seal/unseal pipeline (no ledger involved).

seal:    capsule -> canonical bytes -> commitments + AES-GCM ciphertext
unseal:  ciphertext -> [verify ciphertext hash] -> decrypt -> parse
         -> [verify state commitment] -> capsule
"""
from __future__ import annotations

import logging
import time
from typing import Any, Optional

from . import cipher
from .canonical import canonicalize, parse_canonical
from .capsule import Capsule
from .commitment import (
    ciphertext_commitment,
    hash_bytes,
    metadata_commitment,
    verify_ciphertext_commitment,
    verify_state_commitment,
)
from .errors import SerializationError, ValidationError
from .records import SealedCapsule, SealReceipt
from .storage import ContentStore

logger = logging.getLogger(__name__)


def seal(capsule: Capsule, metadata: Any = None) -> SealedCapsule:
    """Encrypt a capsule under a fresh single-use content key."""
    plaintext = canonicalize(capsule.to_dict())
    state = hash_bytes(plaintext)
    metadata_hash = metadata_commitment(metadata)
    key = cipher.generate_content_key()
    ciphertext = cipher.encrypt(plaintext, key)
    return SealedCapsule(
        ciphertext=ciphertext,
        content_hash=ciphertext_commitment(ciphertext),
        state_commitment=state,
        metadata_hash=metadata_hash,
        encryption_key=key,
    )


def decode_capsule(plaintext: bytes) -> Capsule:
    try:
        data = parse_canonical(plaintext)
    except SerializationError as exc:
        raise ValidationError(f"decrypted content is not a capsule: {exc}") from exc
    return Capsule.from_dict(data)


def unseal(
    ciphertext: bytes,
    key: bytes,
    state_commitment: Optional[str] = None,
    ciphertext_hash: Optional[str] = None,
) -> Capsule:
    """Decrypt and optionally verify.

    Each supplied commitment is checked; the ciphertext hash before
    decrypting, the state commitment after.
    """
    if ciphertext_hash is not None:
        verify_ciphertext_commitment(ciphertext, ciphertext_hash)
    capsule = decode_capsule(cipher.decrypt(ciphertext, key))
    if state_commitment is not None:
        verify_state_commitment(capsule, state_commitment)
    return capsule


def verify_and_decrypt(
    ciphertext: bytes,
    key: bytes,
    expected_state: str,
    expected_ciphertext_hash: str,
) -> Capsule:
    """Strict form of :func:`unseal`: both commitments are mandatory."""
    return unseal(
        ciphertext,
        key,
        state_commitment=expected_state,
        ciphertext_hash=expected_ciphertext_hash,
    )


async def seal_and_upload(
    capsule: Capsule,
    store: ContentStore,
    metadata: Any = None,
) -> tuple[SealedCapsule, SealReceipt]:
    sealed = seal(capsule, metadata)
    uri = await store.upload(sealed.ciphertext)
    logger.info("sealed capsule %s uploaded to %s", sealed.state_commitment, uri)
    receipt = SealReceipt(
        state_commitment=sealed.state_commitment,
        ciphertext_hash=sealed.content_hash,
        metadata_hash=sealed.metadata_hash,
        ciphertext_uri=uri,
        sealed_at=int(time.time()),
    )
    return sealed, receipt


async def download_and_unseal(
    uri: str,
    key: bytes,
    store: ContentStore,
    state_commitment: Optional[str] = None,
    ciphertext_hash: Optional[str] = None,
) -> Capsule:
    ciphertext = await store.download(uri)
    logger.debug("downloaded %d bytes from %s", len(ciphertext), uri)
    return unseal(ciphertext, key, state_commitment, ciphertext_hash)


__all__ = [
    "seal",
    "unseal",
    "decode_capsule",
    "verify_and_decrypt",
    "seal_and_upload",
    "download_and_unseal",
]
