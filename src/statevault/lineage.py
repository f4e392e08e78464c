"""Checkpoint lineage verification.

Two modes:
- ``verify_lineage``: an ordered (oldest-first) sequence must form one
  unbroken chain back to the zero sentinel.
- ``walk_lineage``: start from any checkpoint and follow predecessors through
  an untrusted record source, with cycle detection and a hard step bound.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from .commitment import ZERO_HASH, is_zero_hash
from .errors import (
    CheckpointNotFound,
    GenesisPredecessorNotZero,
    LineageBroken,
    LineageCycle,
    ValidationError,
)
from .records import CheckpointRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10_000


class ChainLink(Protocol):
    checkpoint_id: str
    predecessor_id: str


FetchCheckpoint = Callable[[str], Awaitable[Optional[CheckpointRecord]]]


def verify_lineage(checkpoints: Sequence[ChainLink]) -> None:
    """Raise if ``checkpoints`` (oldest first) is not a single chain."""
    if not checkpoints:
        return

    first = checkpoints[0]
    if not is_zero_hash(first.predecessor_id):
        raise GenesisPredecessorNotZero(first.predecessor_id)

    for index in range(1, len(checkpoints)):
        expected = checkpoints[index - 1].checkpoint_id
        actual = checkpoints[index].predecessor_id
        if not _same_id(expected, actual):
            raise LineageBroken(index, expected, actual)


def _same_id(left: object, right: object) -> bool:
    if not isinstance(left, str) or not isinstance(right, str) or not left:
        return False
    return left.lower() == right.lower()


async def walk_lineage(
    start_id: str,
    fetch: FetchCheckpoint,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[CheckpointRecord]:
    """Follow predecessors backwards from ``start_id``.

    Returns records newest first. Stops at the zero sentinel; a walk that
    hits ``max_depth`` fetches returns what it has and logs a warning.
    """
    if max_depth < 1:
        raise ValidationError(f"max_depth must be at least 1, got {max_depth}")

    lineage: list[CheckpointRecord] = []
    visited: set[str] = set()
    current = start_id

    while not is_zero_hash(current):
        if not isinstance(current, str) or not current:
            raise LineageBroken(len(lineage), "a checkpoint id", repr(current))
        if len(lineage) >= max_depth:
            logger.warning(
                "lineage walk from %s truncated at max_depth=%d (next: %s)",
                start_id, max_depth, current,
            )
            break

        key = current.lower()
        if key in visited:
            raise LineageCycle(current)
        visited.add(key)

        record = await fetch(current)
        if record is None:
            raise CheckpointNotFound(current)
        lineage.append(record)
        logger.debug("lineage step %d: %s -> %s", len(lineage), current, record.predecessor_id)
        current = record.predecessor_id

    return lineage


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "ZERO_HASH",
    "verify_lineage",
    "walk_lineage",
]
