"""Pytest configuration and fixtures for statevault tests."""
from __future__ import annotations

from dataclasses import dataclass

import pytest

from statevault.capsule import Capsule
from statevault.keys import KeyStore
from statevault.keywrap import KeyPair, generate_key_pair
from statevault.ledger import InMemoryLedger
from statevault.storage import InMemoryContentStore

PUBLISHER = "0xpublisher"
CONSUMER = "0xconsumer"


@pytest.fixture
def sample_payload():
    """A payload with nesting, unicode and mixed number types."""
    return {
        "agent": "navigator",
        "step": 42,
        "confidence": 0.875,
        "memory": {"facts": ["sky is blue", "water is wet"], "énergie": True},
        "parent": None,
    }


@pytest.fixture
def capsule(sample_payload):
    return Capsule(payload=sample_payload, version="1.0.0", schema="test/v1")


class SpyLedger(InMemoryLedger):
    """InMemoryLedger that records how often redeem was called."""

    def __init__(self, inner: InMemoryLedger) -> None:
        super().__init__(inner.publisher, account=inner.account, _shared=inner._shared)
        self.redeem_calls = 0

    async def redeem(self, checkpoint_id):
        self.redeem_calls += 1
        await super().redeem(checkpoint_id)


@dataclass
class Network:
    """Publisher and consumer handles onto one shared ledger and store."""
    publisher_ledger: InMemoryLedger
    consumer_ledger: InMemoryLedger
    store: InMemoryContentStore
    publisher_keys: KeyPair
    consumer_keys: KeyPair
    key_store: KeyStore


@pytest.fixture
def network():
    ledger = InMemoryLedger(PUBLISHER)
    return Network(
        publisher_ledger=ledger,
        consumer_ledger=ledger.connect(CONSUMER),
        store=InMemoryContentStore(),
        publisher_keys=generate_key_pair(),
        consumer_keys=generate_key_pair(),
        key_store=KeyStore(),
    )


@pytest.fixture
def tmp_workspace(tmp_path):
    """An empty directory to initialize a CLI workspace in."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace
