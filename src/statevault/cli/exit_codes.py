"""Stable exit codes for the statevault CLI."""
from __future__ import annotations

from ..errors import (
    AuthenticationFailed,
    CommitmentMismatch,
    EnvelopeNotFound,
    EnvelopeNotYetAvailable,
    InvalidKeyLength,
    LineageError,
    MalformedEnvelope,
    SerializationError,
    StateVaultError,
    TooShort,
    UnwrapFailed,
    ValidationError,
)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_COMMITMENT_MISMATCH = 10
EXIT_AUTH_FAILED = 11
EXIT_LINEAGE = 12
EXIT_ENVELOPE_UNAVAILABLE = 13
EXIT_MALFORMED = 20

_CODES: tuple[tuple[type[StateVaultError], int], ...] = (
    (CommitmentMismatch, EXIT_COMMITMENT_MISMATCH),
    (AuthenticationFailed, EXIT_AUTH_FAILED),
    (UnwrapFailed, EXIT_AUTH_FAILED),
    (LineageError, EXIT_LINEAGE),
    (EnvelopeNotYetAvailable, EXIT_ENVELOPE_UNAVAILABLE),
    (EnvelopeNotFound, EXIT_ENVELOPE_UNAVAILABLE),
    (MalformedEnvelope, EXIT_MALFORMED),
    (ValidationError, EXIT_MALFORMED),
    (SerializationError, EXIT_MALFORMED),
    (InvalidKeyLength, EXIT_MALFORMED),
    (TooShort, EXIT_MALFORMED),
)


def exit_code_for(exc: BaseException) -> int:
    for kind, code in _CODES:
        if isinstance(exc, kind):
            return code
    return EXIT_ERROR


def guidance_for(exc: BaseException) -> str | None:
    """One-line hint telling the user what to do next."""
    if isinstance(exc, EnvelopeNotYetAvailable):
        return "Nothing was redeemed. Ask the publisher to fulfil delivery, then retry."
    if isinstance(exc, EnvelopeNotFound):
        return (
            "If you already redeemed, do not redeem again: wait for the publisher "
            "to deliver the envelope and re-run consume."
        )
    if isinstance(exc, CommitmentMismatch):
        return "The data does not match its commitment; it may be corrupted or tampered with."
    if isinstance(exc, (UnwrapFailed, AuthenticationFailed)):
        return "Check that you are using the key pair registered for this account."
    if isinstance(exc, LineageError):
        return "The checkpoint chain is inconsistent; do not trust records past this point."
    return None


__all__ = [
    "EXIT_OK",
    "EXIT_ERROR",
    "EXIT_COMMITMENT_MISMATCH",
    "EXIT_AUTH_FAILED",
    "EXIT_LINEAGE",
    "EXIT_ENVELOPE_UNAVAILABLE",
    "EXIT_MALFORMED",
    "exit_code_for",
    "guidance_for",
]
