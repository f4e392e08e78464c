"""Key delivery providers: how a wrapped key reaches its consumer.

Both providers address envelopes by ``envelope_id(collection, checkpoint,
consumer)``, which publisher and consumer compute independently.

- ``StorageKeyDelivery`` stores envelopes as blobs in a ContentStore and keeps
  an off-chain index (envelope id -> blob URI). The index can be published
  and reloaded; publishing returns its digest so a consumer can pin it.
- ``LedgerKeyDelivery`` writes the envelope fields into ledger state.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .canonical import canonicalize, parse_canonical
from .commitment import hash_bytes
from .envelope import KeyEnvelope, deserialize_envelope, envelope_id, from_hex, serialize_envelope
from .errors import (
    CommitmentMismatch,
    ContentNotFound,
    EnvelopeNotFound,
    MalformedEnvelope,
    SerializationError,
    ValidationError,
)
from .ledger import Ledger
from .records import CheckpointDescription
from .storage import ContentStore

logger = logging.getLogger(__name__)


class KeyDeliveryProvider(ABC):
    """Contract for moving key envelopes from publisher to consumer."""

    @abstractmethod
    async def store_envelope(
        self,
        collection: str,
        checkpoint_id: str,
        consumer: str,
        envelope: KeyEnvelope,
    ) -> None:
        ...

    @abstractmethod
    async def fetch_envelope(
        self,
        collection: str,
        checkpoint_id: str,
        consumer: str,
    ) -> KeyEnvelope:
        """Return the envelope or raise ``EnvelopeNotFound``."""


def _bound_to(envelope: KeyEnvelope, checkpoint_id: str) -> KeyEnvelope:
    if not envelope.is_bound:
        return envelope.bind(checkpoint_id)
    if envelope.checkpoint_id.lower() != checkpoint_id.lower():
        raise MalformedEnvelope(
            f"envelope is bound to {envelope.checkpoint_id}, not {checkpoint_id}"
        )
    return envelope


# =============================================================================
# OFF-CHAIN (CONTENT STORE + INDEX)
# =============================================================================

class StorageKeyDelivery(KeyDeliveryProvider):
    """Envelopes as content-store blobs, located through an index."""

    def __init__(self, store: ContentStore) -> None:
        self.store = store
        self._index: Dict[str, str] = {}
        self._descriptions: Dict[str, CheckpointDescription] = {}
        self._lock = threading.Lock()

    async def store_envelope(self, collection, checkpoint_id, consumer, envelope):
        try:
            valid = bool(from_hex(checkpoint_id))
        except (TypeError, ValueError):
            valid = False
        if not valid:
            raise ValidationError(f"checkpoint id {checkpoint_id!r} is not hex")
        envelope = _bound_to(envelope, checkpoint_id)
        env_id = envelope_id(collection, checkpoint_id, consumer)
        uri = await self.store.upload(serialize_envelope(envelope))
        with self._lock:
            self._index[env_id] = uri
        logger.debug("envelope %s stored at %s", env_id, uri)

    async def fetch_envelope(self, collection, checkpoint_id, consumer):
        env_id = envelope_id(collection, checkpoint_id, consumer)
        with self._lock:
            uri = self._index.get(env_id)
        if uri is None:
            raise EnvelopeNotFound(env_id, "not in index")
        try:
            data = await self.store.download(uri)
        except ContentNotFound as exc:
            raise EnvelopeNotFound(env_id, f"blob missing at {uri}") from exc
        return deserialize_envelope(data)

    def has_envelope(self, collection: str, checkpoint_id: str, consumer: str) -> bool:
        with self._lock:
            return envelope_id(collection, checkpoint_id, consumer) in self._index

    # -- descriptions -------------------------------------------------------

    def set_description(self, description: CheckpointDescription) -> None:
        with self._lock:
            self._descriptions[description.checkpoint_id.lower()] = description

    def get_description(self, checkpoint_id: str) -> Optional[CheckpointDescription]:
        with self._lock:
            return self._descriptions.get(checkpoint_id.lower())

    def all_descriptions(self) -> list[CheckpointDescription]:
        with self._lock:
            return list(self._descriptions.values())

    # -- index --------------------------------------------------------------

    def export_index(self) -> dict[str, Any]:
        with self._lock:
            return {
                "envelopes": dict(self._index),
                "descriptions": {
                    cp: desc.to_dict() for cp, desc in self._descriptions.items()
                },
            }

    async def publish_index(self) -> tuple[str, str]:
        """Upload the index; returns ``(uri, index_hash)``."""
        data = canonicalize(self.export_index())
        uri = await self.store.upload(data)
        index_hash = hash_bytes(data)
        logger.info("envelope index published at %s (%s)", uri, index_hash)
        return uri, index_hash

    async def load_index(self, uri: str, expected_hash: Optional[str] = None) -> int:
        """Merge a published index into this provider.

        Accepts the combined ``{"envelopes", "descriptions"}`` layout and the
        older flat ``{envelope_id: uri}`` layout. Returns the number of
        envelope entries loaded.
        """
        data = await self.store.download(uri)
        if expected_hash is not None:
            computed = hash_bytes(data)
            if computed.lower() != expected_hash.lower():
                raise CommitmentMismatch("index", expected_hash, computed)
        try:
            decoded = parse_canonical(data)
        except SerializationError as exc:
            raise ValidationError(f"envelope index at {uri} is not JSON") from exc
        if not isinstance(decoded, dict):
            raise ValidationError(f"envelope index at {uri} must be a JSON object")

        if "envelopes" in decoded:
            envelopes = decoded.get("envelopes") or {}
            descriptions = decoded.get("descriptions") or {}
        else:
            envelopes, descriptions = decoded, {}
        if not isinstance(envelopes, dict) or not isinstance(descriptions, dict):
            raise ValidationError(f"envelope index at {uri} has an invalid layout")

        with self._lock:
            for env_id, blob_uri in envelopes.items():
                self._index[env_id.lower()] = str(blob_uri)
            for cp, desc in descriptions.items():
                self._descriptions[cp.lower()] = CheckpointDescription.from_dict(desc)
        logger.debug("loaded %d envelope entries from %s", len(envelopes), uri)
        return len(envelopes)


# =============================================================================
# ON-CHAIN (LEDGER STATE)
# =============================================================================

class LedgerKeyDelivery(KeyDeliveryProvider):
    """Envelopes stored in ledger state, keyed by consumer and checkpoint."""

    def __init__(self, ledger: Ledger) -> None:
        self.ledger = ledger

    async def store_envelope(self, collection, checkpoint_id, consumer, envelope):
        envelope = _bound_to(envelope, checkpoint_id)
        await self.ledger.deliver_envelope(
            consumer,
            checkpoint_id,
            envelope.wrapped_key,
            envelope.nonce,
            envelope.sender_public_key,
        )
        logger.debug(
            "envelope %s delivered on ledger",
            envelope_id(collection, checkpoint_id, consumer),
        )

    async def fetch_envelope(self, collection, checkpoint_id, consumer):
        delivered = await self.ledger.get_envelope(consumer, checkpoint_id)
        if delivered is None:
            raise EnvelopeNotFound(
                envelope_id(collection, checkpoint_id, consumer), "not delivered on ledger"
            )
        return KeyEnvelope(
            checkpoint_id=checkpoint_id,
            wrapped_key=delivered.wrapped_key,
            nonce=delivered.nonce,
            sender_public_key=delivered.sender_public_key,
        )


__all__ = [
    "KeyDeliveryProvider",
    "StorageKeyDelivery",
    "LedgerKeyDelivery",
]
