"""Value records passed between the pipeline and its collaborators."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, NamedTuple, Optional

from .envelope import from_hex, to_hex


@dataclass(frozen=True)
class SealedCapsule:
    """Result of sealing one capsule.

    ``encryption_key`` is the only secret the publisher has to keep.
    """
    ciphertext: bytes
    content_hash: str
    state_commitment: str
    metadata_hash: str
    encryption_key: bytes

    def __repr__(self) -> str:
        return (
            f"SealedCapsule(content_hash={self.content_hash!r}, "
            f"state_commitment={self.state_commitment!r}, "
            f"metadata_hash={self.metadata_hash!r}, "
            f"ciphertext=<{len(self.ciphertext)} bytes>, encryption_key=<redacted>)"
        )


@dataclass(frozen=True)
class SealReceipt:
    """Off-chain proof of what was sealed and where it was uploaded."""
    state_commitment: str
    ciphertext_hash: str
    metadata_hash: str
    ciphertext_uri: str
    sealed_at: int

    def to_dict(self) -> dict:
        return {
            "stateCommitment": self.state_commitment,
            "ciphertextHash": self.ciphertext_hash,
            "metadataHash": self.metadata_hash,
            "ciphertextUri": self.ciphertext_uri,
            "sealedAt": self.sealed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SealReceipt":
        return cls(
            state_commitment=data["stateCommitment"],
            ciphertext_hash=data["ciphertextHash"],
            metadata_hash=data["metadataHash"],
            ciphertext_uri=data["ciphertextUri"],
            sealed_at=int(data["sealedAt"]),
        )


@dataclass(frozen=True)
class CheckpointRecord:
    """One published checkpoint as read back from the ledger."""
    checkpoint_id: str
    predecessor_id: str
    state_commitment: str
    ciphertext_hash: str
    ciphertext_uri: str
    manifest_hash: str
    published_at: int
    block_number: int

    def to_dict(self) -> dict:
        return {
            "checkpointId": self.checkpoint_id,
            "predecessorId": self.predecessor_id,
            "stateCommitment": self.state_commitment,
            "ciphertextHash": self.ciphertext_hash,
            "ciphertextUri": self.ciphertext_uri,
            "manifestHash": self.manifest_hash,
            "publishedAt": self.published_at,
            "blockNumber": self.block_number,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CheckpointRecord":
        return cls(
            checkpoint_id=data["checkpointId"],
            predecessor_id=data["predecessorId"],
            state_commitment=data["stateCommitment"],
            ciphertext_hash=data["ciphertextHash"],
            ciphertext_uri=data["ciphertextUri"],
            manifest_hash=data["manifestHash"],
            published_at=int(data["publishedAt"]),
            block_number=int(data["blockNumber"]),
        )


@dataclass
class CheckpointDescription:
    """Human-facing description published next to the envelope index."""
    checkpoint_id: str
    title: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["checkpointId"] = data.pop("checkpoint_id")
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CheckpointDescription":
        return cls(
            checkpoint_id=data["checkpointId"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            tags=list(data.get("tags", [])),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass(frozen=True)
class TimelineEntry:
    """A checkpoint with its ledger label and off-chain description, if any."""
    record: CheckpointRecord
    label: Optional[str] = None
    description: Optional[CheckpointDescription] = None

    def to_dict(self) -> dict:
        data = self.record.to_dict()
        data["label"] = self.label
        if self.description is not None:
            data["title"] = self.description.title
            data["description"] = self.description.description
            data["tags"] = list(self.description.tags)
            data["descriptionMetadata"] = dict(self.description.metadata)
        return data


class DeliveredEnvelope(NamedTuple):
    """Raw envelope fields as held in ledger state."""
    wrapped_key: bytes
    nonce: bytes
    sender_public_key: bytes

    def to_dict(self) -> dict:
        return {
            "wrappedKey": to_hex(self.wrapped_key),
            "nonce": to_hex(self.nonce),
            "senderPublicKey": to_hex(self.sender_public_key),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeliveredEnvelope":
        return cls(
            wrapped_key=from_hex(data["wrappedKey"]),
            nonce=from_hex(data["nonce"]),
            sender_public_key=from_hex(data["senderPublicKey"]),
        )


__all__ = [
    "SealedCapsule",
    "SealReceipt",
    "CheckpointRecord",
    "CheckpointDescription",
    "TimelineEntry",
    "DeliveredEnvelope",
]
