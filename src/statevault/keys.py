"""Publisher-side key custody.

``KeyStore`` holds checkpoint -> content key, keyed by the lowercased
checkpoint id. Each key is written once and read many times.
``PublisherKeyManager`` uses it to wrap keys for consumers who redeemed.
"""
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, Mapping, Optional

from .cipher import KEY_LENGTH
from .envelope import PUBLIC_KEY_LENGTH, KeyEnvelope, from_hex, to_hex
from .errors import InvalidKeyLength, KeyNotFound, ValidationError
from .keywrap import KeyPair, wrap_key

if TYPE_CHECKING:
    from .delivery import KeyDeliveryProvider

logger = logging.getLogger(__name__)


class KeyStore:
    """Thread-safe, write-once map of checkpoint id to content key."""

    def __init__(self, initial: Optional[Mapping[str, bytes]] = None) -> None:
        self._keys: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        for checkpoint_id, key in (initial or {}).items():
            self.put(checkpoint_id, key)

    def put(self, checkpoint_id: str, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise InvalidKeyLength(KEY_LENGTH, len(key), "content key")
        normalized = checkpoint_id.lower()
        with self._lock:
            existing = self._keys.get(normalized)
            if existing is not None:
                if existing != bytes(key):
                    raise ValidationError(
                        f"a different content key is already stored for {checkpoint_id}"
                    )
                return
            self._keys[normalized] = bytes(key)

    def get(self, checkpoint_id: str) -> Optional[bytes]:
        with self._lock:
            return self._keys.get(checkpoint_id.lower())

    def __contains__(self, checkpoint_id: object) -> bool:
        if not isinstance(checkpoint_id, str):
            return False
        with self._lock:
            return checkpoint_id.lower() in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def to_hex_map(self) -> dict[str, str]:
        with self._lock:
            return {cp: to_hex(key) for cp, key in self._keys.items()}

    @classmethod
    def from_hex_map(cls, data: Mapping[str, str]) -> "KeyStore":
        store = cls()
        store.import_hex_map(data)
        return store

    def import_hex_map(self, data: Mapping[str, str]) -> int:
        count = 0
        for checkpoint_id, hex_key in data.items():
            try:
                key = from_hex(hex_key)
            except ValueError as exc:
                raise ValidationError(f"invalid key hex for {checkpoint_id}") from exc
            self.put(checkpoint_id, key)
            count += 1
        return count


class PublisherKeyManager:
    """Wraps stored content keys for consumers and hands them to delivery."""

    def __init__(
        self,
        key_pair: KeyPair,
        delivery: "KeyDeliveryProvider",
        key_store: Optional[KeyStore] = None,
    ) -> None:
        self.key_pair = key_pair
        self.delivery = delivery
        self.key_store = key_store if key_store is not None else KeyStore()

    @property
    def public_key(self) -> bytes:
        return self.key_pair.public_key

    def store_key(self, checkpoint_id: str, key: bytes) -> None:
        self.key_store.put(checkpoint_id, key)

    def has_key(self, checkpoint_id: str) -> bool:
        return checkpoint_id in self.key_store

    async def fulfill_redemption(
        self,
        collection: str,
        checkpoint_id: str,
        consumer: str,
        consumer_public_key: Optional[bytes],
    ) -> KeyEnvelope:
        """Wrap the checkpoint's content key for ``consumer`` and deliver it."""
        key = self.key_store.get(checkpoint_id)
        if key is None:
            raise KeyNotFound(checkpoint_id)
        if consumer_public_key is None or len(consumer_public_key) != PUBLIC_KEY_LENGTH:
            actual = 0 if consumer_public_key is None else len(consumer_public_key)
            raise InvalidKeyLength(PUBLIC_KEY_LENGTH, actual, "consumer public key")

        envelope = wrap_key(key, consumer_public_key, self.key_pair.secret_key).bind(
            checkpoint_id
        )
        await self.delivery.store_envelope(collection, checkpoint_id, consumer, envelope)
        logger.info("fulfilled redemption of %s for %s", checkpoint_id, consumer)
        return envelope

    def export_keys(self) -> dict[str, str]:
        """Hex map of every stored key, for backup."""
        return self.key_store.to_hex_map()

    def import_keys(self, keys: Mapping[str, str]) -> int:
        return self.key_store.import_hex_map(keys)


__all__ = ["KeyStore", "PublisherKeyManager"]
