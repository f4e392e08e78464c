"""Tests for commitments and the capsule model."""
from __future__ import annotations

import pytest

from statevault.capsule import AGENT_SCHEMA, Capsule, create_agent_capsule, serialize_manifest
from statevault.commitment import (
    ZERO_HASH,
    ciphertext_commitment,
    hash_bytes,
    metadata_commitment,
    state_commitment,
    verify_ciphertext_commitment,
    verify_metadata_commitment,
    verify_state_commitment,
)
from statevault.errors import CommitmentMismatch, ValidationError


class TestHashing:
    """keccak-256 digests."""

    def test_empty_input_known_digest(self):
        assert hash_bytes(b"") == (
            "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_digest_format(self):
        """0x prefix, 32 bytes, lowercase hex."""
        digest = hash_bytes(b"statevault")
        assert digest.startswith("0x")
        assert len(digest) == 66
        assert digest == digest.lower()

    def test_zero_hash_shape(self):
        assert ZERO_HASH == "0x" + "0" * 64


class TestStateCommitment:
    """Round trip and sensitivity of the state commitment."""

    def test_verify_round_trip(self, capsule):
        verify_state_commitment(capsule, state_commitment(capsule))

    def test_verify_is_case_insensitive(self, capsule):
        """Upper-cased hex still verifies."""
        expected = "0x" + state_commitment(capsule)[2:].upper()
        assert verify_state_commitment(capsule, expected) is None

    def test_key_order_does_not_matter(self):
        a = Capsule(payload={"x": 1, "y": 2})
        b = Capsule(payload={"y": 2, "x": 1})
        assert state_commitment(a) == state_commitment(b)

    def test_every_field_changes_commitment(self, sample_payload):
        """version, schema and payload all feed the commitment."""
        base = Capsule(payload=sample_payload, version="1.0.0", schema="s")
        variants = [
            Capsule(payload=sample_payload, version="1.0.1", schema="s"),
            Capsule(payload=sample_payload, version="1.0.0", schema="t"),
            Capsule(payload=sample_payload, version="1.0.0"),
            Capsule(payload={**sample_payload, "step": 43}, version="1.0.0", schema="s"),
        ]
        digests = {state_commitment(base)} | {state_commitment(v) for v in variants}
        assert len(digests) == 5

    def test_mismatch_raises_with_fields(self, capsule):
        """A wrong digest raises with expected and computed attached."""
        wrong = "0x" + "ab" * 32
        with pytest.raises(CommitmentMismatch) as excinfo:
            verify_state_commitment(capsule, wrong)
        assert excinfo.value.kind == "state"
        assert excinfo.value.expected == wrong
        assert excinfo.value.computed == state_commitment(capsule)


class TestOtherCommitments:
    """Ciphertext and metadata roles."""

    def test_ciphertext_commitment_is_plain_hash(self):
        assert ciphertext_commitment(b"abc") == hash_bytes(b"abc")

    def test_ciphertext_mismatch(self):
        with pytest.raises(CommitmentMismatch) as excinfo:
            verify_ciphertext_commitment(b"abc", hash_bytes(b"abd"))
        assert excinfo.value.kind == "ciphertext"

    def test_metadata_absent_is_zero_sentinel(self):
        assert metadata_commitment(None) == ZERO_HASH
        verify_metadata_commitment(None, ZERO_HASH)

    def test_metadata_present(self):
        meta = {"source": "unit-test"}
        verify_metadata_commitment(meta, metadata_commitment(meta))
        with pytest.raises(CommitmentMismatch):
            verify_metadata_commitment({"source": "other"}, metadata_commitment(meta))


class TestCapsule:
    """Capsule validation and immutability."""

    def test_to_dict_omits_missing_schema(self):
        assert Capsule(payload={"a": 1}).to_dict() == {"version": "1.0.0", "payload": {"a": 1}}

    def test_payload_is_copied(self):
        """Mutating the caller's dict does not change the capsule."""
        payload = {"a": [1]}
        capsule = Capsule(payload=payload)
        payload["a"].append(2)
        assert capsule.payload == {"a": [1]}

    @pytest.mark.parametrize("payload", [None, [1, 2], "text"])
    def test_payload_must_be_object(self, payload):
        with pytest.raises(ValidationError):
            Capsule(payload=payload)

    def test_version_required(self):
        with pytest.raises(ValidationError):
            Capsule(payload={}, version="")

    def test_from_dict_round_trip(self, capsule):
        assert Capsule.from_dict(capsule.to_dict()) == capsule

    def test_from_dict_missing_payload(self):
        with pytest.raises(ValidationError):
            Capsule.from_dict({"version": "1.0.0"})


class TestAgentCapsule:
    """agent/v1 helpers."""

    def test_create_agent_capsule(self):
        capsule = create_agent_capsule(
            {"id": "agent-1", "name": "navigator"},
            {"modelId": "model-x", "temperature": 0.2},
            {"entries": 3},
        )
        assert capsule.schema == AGENT_SCHEMA
        assert capsule.payload["identityKernel"]["id"] == "agent-1"
        assert capsule.payload["memoryIndex"] == {"entries": 3}

    def test_memory_index_defaults_to_empty(self):
        """Omitting the index commits the same bytes as passing the empty one."""
        capsule = create_agent_capsule({"id": "a"}, {"modelId": "m"})
        assert capsule.payload["memoryIndex"] == {"version": "1.0.0", "segments": []}
        explicit = create_agent_capsule(
            {"id": "a"}, {"modelId": "m"}, {"version": "1.0.0", "segments": []}
        )
        assert state_commitment(capsule) == state_commitment(explicit)

    def test_requires_identity_id(self):
        with pytest.raises(ValidationError):
            create_agent_capsule({"name": "x"}, {"modelId": "m"})

    def test_requires_model_id(self):
        with pytest.raises(ValidationError):
            create_agent_capsule({"id": "a"}, {"temperature": 1})

    def test_serialize_manifest_is_canonical(self):
        assert serialize_manifest({"b": 1, "a": 2}) == b'{"a":2,"b":1}'
