"""Capsule model: versioned, schema-agnostic state container.

The protocol never looks inside ``payload``; it only canonicalizes it.
Agent helpers build the ``agent/v1`` layout used by autonomous agents to
checkpoint identity, execution manifest and memory index together.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .canonical import canonicalize
from .errors import ValidationError

DEFAULT_VERSION = "1.0.0"
AGENT_SCHEMA = "agent/v1"


# =============================================================================
# CAPSULE
# =============================================================================

@dataclass(frozen=True)
class Capsule:
    """Versioned state container.

    The payload is deep-copied on construction so later mutation of the
    caller's dict cannot change what was committed.
    """
    payload: dict[str, Any]
    version: str = DEFAULT_VERSION
    schema: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.version, str) or not self.version:
            raise ValidationError("capsule version must be a non-empty string")
        if self.payload is None or not isinstance(self.payload, Mapping):
            raise ValidationError("capsule payload must be a non-null object")
        if self.schema is not None and not isinstance(self.schema, str):
            raise ValidationError("capsule schema must be a string when present")
        object.__setattr__(self, "payload", copy.deepcopy(dict(self.payload)))

    def to_dict(self) -> dict[str, Any]:
        """Plain dict form; ``schema`` is omitted when absent."""
        data: dict[str, Any] = {"version": self.version}
        if self.schema is not None:
            data["schema"] = self.schema
        data["payload"] = copy.deepcopy(self.payload)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Capsule":
        """Rebuild a capsule from decoded JSON, validating its shape."""
        if not isinstance(data, Mapping):
            raise ValidationError("capsule must be a JSON object")
        if "version" not in data:
            raise ValidationError("capsule is missing 'version'")
        if "payload" not in data:
            raise ValidationError("capsule is missing 'payload'")
        return cls(
            payload=data["payload"],
            version=data["version"],
            schema=data.get("schema"),
        )


def create_capsule(
    payload: Mapping[str, Any],
    *,
    version: str = DEFAULT_VERSION,
    schema: Optional[str] = None,
) -> Capsule:
    return Capsule(payload=dict(payload), version=version, schema=schema)


# =============================================================================
# AGENT SCHEMA (agent/v1)
# =============================================================================

def empty_memory_index() -> dict[str, Any]:
    return {"version": DEFAULT_VERSION, "segments": []}


def create_agent_capsule(
    identity_kernel: Mapping[str, Any],
    execution_manifest: Mapping[str, Any],
    memory_index: Optional[Mapping[str, Any]] = None,
    *,
    version: str = DEFAULT_VERSION,
) -> Capsule:
    """Build an ``agent/v1`` capsule.

    ``identity_kernel`` must carry an ``id`` and ``execution_manifest`` a
    ``modelId``; everything else is passed through untouched.
    """
    if not identity_kernel or not identity_kernel.get("id"):
        raise ValidationError("identity kernel requires an 'id'")
    if not execution_manifest or not execution_manifest.get("modelId"):
        raise ValidationError("execution manifest requires a 'modelId'")

    payload: dict[str, Any] = {
        "identityKernel": dict(identity_kernel),
        "executionManifest": dict(execution_manifest),
        "memoryIndex": dict(memory_index) if memory_index is not None else empty_memory_index(),
    }
    return Capsule(payload=payload, version=version, schema=AGENT_SCHEMA)


def serialize_manifest(manifest: Mapping[str, Any]) -> bytes:
    """Canonical bytes of an execution manifest, for hashing on its own."""
    return canonicalize(dict(manifest))


__all__ = [
    "DEFAULT_VERSION",
    "AGENT_SCHEMA",
    "Capsule",
    "create_capsule",
    "create_agent_capsule",
    "empty_memory_index",
    "serialize_manifest",
]
