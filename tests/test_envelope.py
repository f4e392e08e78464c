"""Tests for envelope addressing and the envelope codec."""
from __future__ import annotations

import json

import pytest

from statevault.commitment import hash_bytes
from statevault.envelope import (
    KeyEnvelope,
    deserialize_envelope,
    envelope_id,
    serialize_envelope,
)
from statevault.errors import MalformedEnvelope

CHECKPOINT = "0x" + "1a" * 32


def _envelope() -> KeyEnvelope:
    return KeyEnvelope(
        checkpoint_id=CHECKPOINT,
        wrapped_key=bytes(range(48)),
        nonce=bytes(range(24)),
        sender_public_key=bytes(range(100, 132)),
    )


class TestEnvelopeId:
    """Deterministic addressing."""

    def test_matches_hash_of_lowercase_triple(self):
        expected = hash_bytes(b"0xcollection:0xcheckpoint:0xconsumer")
        assert envelope_id("0xCollection", "0xCHECKPOINT", "0xConsumer") == expected

    def test_case_insensitive(self):
        assert envelope_id("0xAB", "0xCD", "0xEF") == envelope_id("0xab", "0xcd", "0xef")

    def test_distinct_recipients_distinct_ids(self):
        assert envelope_id("c", "p", "alice") != envelope_id("c", "p", "bob")


class TestCodec:
    """JSON wire form with four hex fields."""

    def test_round_trip(self):
        envelope = _envelope()
        assert deserialize_envelope(serialize_envelope(envelope)) == envelope

    def test_wire_fields(self):
        data = json.loads(serialize_envelope(_envelope()))
        assert set(data) == {"checkpointId", "wrappedKey", "nonce", "senderPublicKey"}
        assert data["nonce"] == "0x" + bytes(range(24)).hex()

    def test_bind_returns_copy(self):
        unbound = KeyEnvelope("", b"k", b"\x00" * 24, b"\x01" * 32)
        bound = unbound.bind(CHECKPOINT)
        assert unbound.checkpoint_id == ""
        assert bound.checkpoint_id == CHECKPOINT
        assert bound.is_bound and not unbound.is_bound

    @pytest.mark.parametrize("missing", ["checkpointId", "wrappedKey", "nonce", "senderPublicKey"])
    def test_missing_field(self, missing):
        data = _envelope().to_dict()
        del data[missing]
        with pytest.raises(MalformedEnvelope):
            deserialize_envelope(json.dumps(data).encode())

    @pytest.mark.parametrize("field", ["checkpointId", "wrappedKey", "nonce", "senderPublicKey"])
    def test_empty_field(self, field):
        data = _envelope().to_dict()
        data[field] = ""
        with pytest.raises(MalformedEnvelope):
            deserialize_envelope(json.dumps(data).encode())

    def test_invalid_hex(self):
        data = _envelope().to_dict()
        data["wrappedKey"] = "0xnothex"
        with pytest.raises(MalformedEnvelope) as excinfo:
            deserialize_envelope(json.dumps(data).encode())
        assert "wrappedKey" in excinfo.value.reason

    def test_wrong_nonce_length(self):
        data = _envelope().to_dict()
        data["nonce"] = "0x" + "00" * 12
        with pytest.raises(MalformedEnvelope):
            deserialize_envelope(json.dumps(data).encode())

    def test_invalid_json(self):
        with pytest.raises(MalformedEnvelope):
            deserialize_envelope(b"{broken")

    def test_not_an_object(self):
        with pytest.raises(MalformedEnvelope):
            deserialize_envelope(b"[1, 2]")
