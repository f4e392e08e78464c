"""Tests for the key store and publisher key manager."""
from __future__ import annotations

import asyncio
import threading

import pytest

from statevault.cipher import generate_content_key
from statevault.delivery import StorageKeyDelivery
from statevault.errors import InvalidKeyLength, KeyNotFound, ValidationError
from statevault.keys import KeyStore, PublisherKeyManager
from statevault.keywrap import generate_key_pair, unwrap_key
from statevault.storage import InMemoryContentStore

CHECKPOINT = "0x" + "Ab" * 32
COLLECTION = "0xcollection"


class TestKeyStore:
    """Write-once, normalized checkpoint -> key map."""

    def test_ids_are_normalized(self):
        store = KeyStore()
        key = generate_content_key()
        store.put(CHECKPOINT, key)
        assert store.get(CHECKPOINT.lower()) == key
        assert CHECKPOINT.upper().replace("0X", "0x") in store

    def test_same_key_twice_is_noop(self):
        store = KeyStore()
        key = generate_content_key()
        store.put(CHECKPOINT, key)
        store.put(CHECKPOINT.lower(), key)
        assert len(store) == 1

    def test_different_key_rejected(self):
        store = KeyStore()
        store.put(CHECKPOINT, generate_content_key())
        with pytest.raises(ValidationError):
            store.put(CHECKPOINT, generate_content_key())

    def test_key_length_checked(self):
        with pytest.raises(InvalidKeyLength):
            KeyStore().put(CHECKPOINT, b"short")

    def test_hex_map_round_trip(self):
        store = KeyStore()
        store.put(CHECKPOINT, generate_content_key())
        restored = KeyStore.from_hex_map(store.to_hex_map())
        assert restored.get(CHECKPOINT) == store.get(CHECKPOINT)

    def test_bad_hex_rejected(self):
        with pytest.raises(ValidationError):
            KeyStore.from_hex_map({CHECKPOINT: "0xzz"})

    def test_concurrent_puts(self):
        """Many threads storing distinct keys all land."""
        store = KeyStore()

        def worker(n: int) -> None:
            store.put(f"0x{n:064x}", generate_content_key())

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(32)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store) == 32


class TestPublisherKeyManager:
    """Fulfilment wraps stored keys for consumers."""

    def _manager(self):
        delivery = StorageKeyDelivery(InMemoryContentStore())
        return PublisherKeyManager(generate_key_pair(), delivery), delivery

    def test_fulfill_delivers_unwrappable_envelope(self):
        manager, delivery = self._manager()
        consumer = generate_key_pair()
        key = generate_content_key()
        manager.store_key(CHECKPOINT, key)

        async def scenario():
            await manager.fulfill_redemption(COLLECTION, CHECKPOINT, "0xbob", consumer.public_key)
            return await delivery.fetch_envelope(COLLECTION, CHECKPOINT, "0xBOB")

        envelope = asyncio.run(scenario())
        assert envelope.checkpoint_id == CHECKPOINT
        assert envelope.sender_public_key == manager.public_key
        assert unwrap_key(envelope, consumer.secret_key) == key

    def test_fulfill_without_key(self):
        manager, _ = self._manager()
        with pytest.raises(KeyNotFound) as excinfo:
            asyncio.run(manager.fulfill_redemption(
                COLLECTION, CHECKPOINT, "0xbob", generate_key_pair().public_key
            ))
        assert excinfo.value.checkpoint_id == CHECKPOINT

    def test_fulfill_bad_consumer_key(self):
        manager, _ = self._manager()
        manager.store_key(CHECKPOINT, generate_content_key())
        with pytest.raises(InvalidKeyLength):
            asyncio.run(manager.fulfill_redemption(COLLECTION, CHECKPOINT, "0xbob", b"\x01" * 16))

    def test_export_import(self):
        manager, _ = self._manager()
        manager.store_key(CHECKPOINT, generate_content_key())
        other, _ = self._manager()
        assert other.import_keys(manager.export_keys()) == 1
        assert other.has_key(CHECKPOINT)
        assert not other.has_key("0x" + "00" * 32)
