"""Error taxonomy for the sealing/verification pipeline.

Every check in the core raises one of these. Each class carries the fields a
caller needs to branch on (expected/computed digests, chain index, ...) in
addition to a readable message, so callers never parse strings.

Hierarchy:
    StateVaultError
      ValidationError, SerializationError
      InvalidKeyLength, TooShort, AuthenticationFailed, UnwrapFailed
      CommitmentMismatch
      MalformedEnvelope, EnvelopeNotFound, EnvelopeNotYetAvailable
      LineageError -> LineageBroken, GenesisPredecessorNotZero, LineageCycle
      CheckpointNotFound, ContentNotFound, KeyNotFound
      LedgerError, CollaboratorError
"""
from __future__ import annotations


class StateVaultError(Exception):
    """Base class for all statevault errors."""


class ValidationError(StateVaultError):
    """Malformed capsule or input shape."""


class SerializationError(StateVaultError):
    """Value has no canonical representation, or bytes are not valid JSON."""


class InvalidKeyLength(StateVaultError):
    def __init__(self, expected: int, actual: int, what: str = "key") -> None:
        self.expected = expected
        self.actual = actual
        self.what = what
        super().__init__(f"{what} must be {expected} bytes, got {actual}")


class TooShort(StateVaultError):
    def __init__(self, minimum: int, actual: int) -> None:
        self.minimum = minimum
        self.actual = actual
        super().__init__(
            f"sealed data too short: expected at least {minimum} bytes, got {actual}"
        )


class AuthenticationFailed(StateVaultError):
    """Symmetric tag check failed (wrong key, corruption or tampering)."""

    def __init__(self) -> None:
        super().__init__("content decryption failed: authentication tag mismatch")


class UnwrapFailed(StateVaultError):
    """Key envelope could not be opened.

    Deliberately carries no detail: wrong key and corrupted data look the same.
    """

    def __init__(self) -> None:
        super().__init__("key envelope could not be unwrapped")


class CommitmentMismatch(StateVaultError):
    def __init__(self, kind: str, expected: str, computed: str) -> None:
        self.kind = kind
        self.expected = expected
        self.computed = computed
        super().__init__(
            f"{kind} commitment mismatch: expected {expected}, computed {computed}"
        )


class MalformedEnvelope(StateVaultError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"malformed key envelope: {reason}")


class EnvelopeNotFound(StateVaultError):
    def __init__(self, envelope_id: str, detail: str = "") -> None:
        self.envelope_id = envelope_id
        message = f"key envelope {envelope_id} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class EnvelopeNotYetAvailable(StateVaultError):
    """Pre-flight guard: the envelope is missing, so nothing was redeemed."""

    def __init__(self, checkpoint_id: str, consumer: str) -> None:
        self.checkpoint_id = checkpoint_id
        self.consumer = consumer
        super().__init__(
            f"key envelope for checkpoint {checkpoint_id} is not yet available to "
            f"{consumer}; nothing was redeemed. Wait for the publisher to fulfil "
            "the delivery and retry."
        )


class LineageError(StateVaultError):
    """Base class for checkpoint chain integrity failures."""


class LineageBroken(LineageError):
    def __init__(self, index: int, expected: str, actual: str) -> None:
        self.index = index
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"checkpoint lineage broken at index {index}: "
            f"expected predecessor {expected}, got {actual}"
        )


class GenesisPredecessorNotZero(LineageError):
    def __init__(self, predecessor_id: str) -> None:
        self.predecessor_id = predecessor_id
        super().__init__(
            f"first checkpoint predecessor must be zero, got {predecessor_id}"
        )


class LineageCycle(LineageError):
    def __init__(self, at: str) -> None:
        self.at = at
        super().__init__(f"cycle detected at checkpoint {at} during lineage walk")


class CheckpointNotFound(StateVaultError):
    def __init__(self, checkpoint_id: str) -> None:
        self.checkpoint_id = checkpoint_id
        super().__init__(f"checkpoint {checkpoint_id} not found")


class LabelNotFound(StateVaultError):
    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"label {label!r} is not assigned to any checkpoint")


class ContentNotFound(StateVaultError):
    def __init__(self, uri: str) -> None:
        self.uri = uri
        super().__init__(f"no content stored at {uri}")


class KeyNotFound(StateVaultError):
    def __init__(self, checkpoint_id: str) -> None:
        self.checkpoint_id = checkpoint_id
        super().__init__(
            f"no content key stored for checkpoint {checkpoint_id}; "
            "was it stored after publishing?"
        )


class LedgerError(StateVaultError):
    """The ledger rejected a call (permissions, double redemption, ...)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"ledger rejected call: {reason}")


class CollaboratorError(StateVaultError):
    """An external collaborator call itself failed (network, I/O, ...)."""

    def __init__(self, step: str, cause: BaseException | None = None) -> None:
        self.step = step
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"collaborator call failed during {step}{detail}")


__all__ = [
    "StateVaultError",
    "ValidationError",
    "SerializationError",
    "InvalidKeyLength",
    "TooShort",
    "AuthenticationFailed",
    "UnwrapFailed",
    "CommitmentMismatch",
    "MalformedEnvelope",
    "EnvelopeNotFound",
    "EnvelopeNotYetAvailable",
    "LineageError",
    "LineageBroken",
    "GenesisPredecessorNotZero",
    "LineageCycle",
    "CheckpointNotFound",
    "LabelNotFound",
    "ContentNotFound",
    "KeyNotFound",
    "LedgerError",
    "CollaboratorError",
]
