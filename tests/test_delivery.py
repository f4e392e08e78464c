"""Tests for key delivery providers and the envelope index."""
from __future__ import annotations

import asyncio
import json

import pytest

from statevault.canonical import canonicalize
from statevault.cipher import generate_content_key
from statevault.commitment import ZERO_HASH
from statevault.delivery import LedgerKeyDelivery, StorageKeyDelivery
from statevault.envelope import envelope_id
from statevault.errors import (
    CommitmentMismatch,
    EnvelopeNotFound,
    MalformedEnvelope,
    ValidationError,
)
from statevault.keywrap import generate_key_pair, wrap_key
from statevault.ledger import InMemoryLedger
from statevault.records import CheckpointDescription
from statevault.storage import InMemoryContentStore

COLLECTION = "0xCollection"
CONSUMER = "0xconsumer"
CHECKPOINT = "0x" + "cd" * 32
MIXED_CASE = "0x" + "CD" * 32


def _envelope():
    sender, recipient = generate_key_pair(), generate_key_pair()
    return wrap_key(generate_content_key(), recipient.public_key, sender.secret_key)


class TestStorageKeyDelivery:
    """Envelopes as blobs plus an off-chain index."""

    def test_store_and_fetch(self):
        delivery = StorageKeyDelivery(InMemoryContentStore())
        checkpoint = "0x" + "12" * 32
        envelope = _envelope()

        async def scenario():
            await delivery.store_envelope(COLLECTION, checkpoint, CONSUMER, envelope)
            return await delivery.fetch_envelope(COLLECTION.lower(), checkpoint.upper(), CONSUMER)

        fetched = asyncio.run(scenario())
        assert fetched == envelope.bind(checkpoint)
        assert delivery.has_envelope(COLLECTION, checkpoint, CONSUMER)

    def test_fetch_missing(self):
        delivery = StorageKeyDelivery(InMemoryContentStore())
        with pytest.raises(EnvelopeNotFound) as excinfo:
            asyncio.run(delivery.fetch_envelope(COLLECTION, "0x01", CONSUMER))
        assert excinfo.value.envelope_id == envelope_id(COLLECTION, "0x01", CONSUMER)

    def test_fetch_with_blob_gone(self):
        """An index entry pointing at nothing is 'not found', not a crash."""
        delivery = StorageKeyDelivery(InMemoryContentStore())
        source = StorageKeyDelivery(InMemoryContentStore())

        async def scenario():
            await source.store_envelope(COLLECTION, "0x01", CONSUMER, _envelope())
            uri, _ = await source.publish_index()
            # Copy only the index blob into the consumer's store.
            index_bytes = await source.store.download(uri)
            index_uri = await delivery.store.upload(index_bytes)
            await delivery.load_index(index_uri)
            await delivery.fetch_envelope(COLLECTION, "0x01", CONSUMER)

        with pytest.raises(EnvelopeNotFound):
            asyncio.run(scenario())

    def test_rejects_envelope_bound_elsewhere(self):
        delivery = StorageKeyDelivery(InMemoryContentStore())
        envelope = _envelope().bind("0x" + "aa" * 32)
        with pytest.raises(MalformedEnvelope):
            asyncio.run(delivery.store_envelope(COLLECTION, "0x" + "bb" * 32, CONSUMER, envelope))

    def test_rejects_non_hex_checkpoint(self):
        """A checkpoint id that cannot round-trip through the envelope codec is refused."""
        store = InMemoryContentStore()
        delivery = StorageKeyDelivery(store)
        for bad in ("0xcp", "", "0x"):
            with pytest.raises(ValidationError):
                asyncio.run(delivery.store_envelope(COLLECTION, bad, CONSUMER, _envelope()))
        assert len(store) == 0
        assert delivery.export_index()["envelopes"] == {}

    def test_publish_and_load_index(self):
        """A second provider over the same store sees the published envelopes."""
        store = InMemoryContentStore()
        publisher = StorageKeyDelivery(store)
        consumer = StorageKeyDelivery(store)
        envelope = _envelope()
        publisher.set_description(CheckpointDescription(MIXED_CASE, title="First", tags=["a"]))

        async def scenario():
            await publisher.store_envelope(COLLECTION, CHECKPOINT, CONSUMER, envelope)
            uri, index_hash = await publisher.publish_index()
            loaded = await consumer.load_index(uri, expected_hash=index_hash.upper().replace("0X", "0x"))
            return loaded, await consumer.fetch_envelope(COLLECTION, CHECKPOINT, CONSUMER)

        loaded, fetched = asyncio.run(scenario())
        assert loaded == 1
        assert fetched.wrapped_key == envelope.wrapped_key
        assert consumer.get_description(CHECKPOINT).title == "First"
        assert [d.checkpoint_id for d in consumer.all_descriptions()] == [MIXED_CASE]

    def test_load_index_hash_mismatch(self):
        store = InMemoryContentStore()
        publisher = StorageKeyDelivery(store)

        async def scenario():
            await publisher.store_envelope(COLLECTION, CHECKPOINT, CONSUMER, _envelope())
            uri, _ = await publisher.publish_index()
            await StorageKeyDelivery(store).load_index(uri, expected_hash=ZERO_HASH)

        with pytest.raises(CommitmentMismatch) as excinfo:
            asyncio.run(scenario())
        assert excinfo.value.kind == "index"

    def test_load_flat_legacy_index(self):
        """The older flat {envelope_id: uri} layout still loads."""
        store = InMemoryContentStore()
        source = StorageKeyDelivery(store)
        envelope = _envelope()

        async def scenario():
            await source.store_envelope(COLLECTION, CHECKPOINT, CONSUMER, envelope)
            flat = source.export_index()["envelopes"]
            uri = await store.upload(json.dumps(flat).encode())
            reader = StorageKeyDelivery(store)
            count = await reader.load_index(uri)
            return count, await reader.fetch_envelope(COLLECTION, CHECKPOINT, CONSUMER)

        count, fetched = asyncio.run(scenario())
        assert count == 1
        assert fetched.nonce == envelope.nonce

    def test_export_index_shape(self):
        delivery = StorageKeyDelivery(InMemoryContentStore())
        asyncio.run(delivery.store_envelope(COLLECTION, CHECKPOINT, CONSUMER, _envelope()))
        index = delivery.export_index()
        assert set(index) == {"envelopes", "descriptions"}
        assert list(index["envelopes"]) == [envelope_id(COLLECTION, CHECKPOINT, CONSUMER)]
        # Index bytes are canonical, so the digest is reproducible.
        assert canonicalize(index) == canonicalize(json.loads(json.dumps(index)))


class TestLedgerKeyDelivery:
    """Envelopes held in ledger state."""

    def test_store_and_fetch(self):
        ledger = InMemoryLedger("0xpub")
        delivery = LedgerKeyDelivery(ledger)
        envelope = _envelope()

        async def scenario():
            cp = await ledger.publish("0x" + "11" * 32, "0x" + "22" * 32, "mem://x", ZERO_HASH)
            await delivery.store_envelope(ledger.address, cp, CONSUMER, envelope)
            reader = LedgerKeyDelivery(ledger.connect(CONSUMER))
            return cp, await reader.fetch_envelope(ledger.address, cp, CONSUMER)

        cp, fetched = asyncio.run(scenario())
        assert fetched == envelope.bind(cp)

    def test_fetch_missing(self):
        ledger = InMemoryLedger("0xpub")
        with pytest.raises(EnvelopeNotFound):
            asyncio.run(LedgerKeyDelivery(ledger).fetch_envelope(ledger.address, "0x01", CONSUMER))
