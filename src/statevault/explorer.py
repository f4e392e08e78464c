"""Read-only views over a ledger's checkpoint chain."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from .errors import CheckpointNotFound, LabelNotFound, ValidationError
from .ledger import Ledger
from .lineage import DEFAULT_MAX_DEPTH, verify_lineage, walk_lineage
from .records import CheckpointRecord, TimelineEntry

if TYPE_CHECKING:
    from .delivery import StorageKeyDelivery

logger = logging.getLogger(__name__)


class Explorer:
    def __init__(self, ledger: Ledger, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.ledger = ledger
        self.max_depth = max_depth

    async def _record_at(self, index: int) -> CheckpointRecord:
        checkpoint_id = await self.ledger.checkpoint_id_at(index)
        record = await self.ledger.get_checkpoint(checkpoint_id)
        if record is None:
            raise CheckpointNotFound(checkpoint_id)
        return record

    async def timeline(self) -> list[CheckpointRecord]:
        """Every checkpoint, oldest first. Reads run concurrently."""
        count = await self.ledger.checkpoint_count()
        return list(await asyncio.gather(*(self._record_at(i) for i in range(count))))

    async def recent(self, count: int = 10) -> list[CheckpointRecord]:
        """Up to ``count`` most recent checkpoints, newest first."""
        if count < 0:
            raise ValidationError(f"count must be non-negative, got {count}")
        total = await self.ledger.checkpoint_count()
        indices = range(total - 1, max(total - count, 0) - 1, -1)
        return list(await asyncio.gather(*(self._record_at(i) for i in indices)))

    async def lineage(
        self,
        checkpoint_id: Optional[str] = None,
        max_depth: Optional[int] = None,
    ) -> list[CheckpointRecord]:
        """Walk back from ``checkpoint_id`` (default: head), newest first."""
        start = checkpoint_id or await self.ledger.head()
        depth = self.max_depth if max_depth is None else max_depth
        return await walk_lineage(start, self.ledger.get_checkpoint, depth)

    async def resolve_label(self, label: str) -> CheckpointRecord:
        """Record the label currently points at."""
        checkpoint_id = await self.ledger.resolve_label(label)
        if checkpoint_id is None:
            raise LabelNotFound(label)
        record = await self.ledger.get_checkpoint(checkpoint_id)
        if record is None:
            raise CheckpointNotFound(checkpoint_id)
        return record

    async def enriched_timeline(
        self,
        descriptions: Optional["StorageKeyDelivery"] = None,
    ) -> list[TimelineEntry]:
        """Timeline with ledger labels and, when given, off-chain descriptions.

        ``descriptions`` is a provider whose index has been loaded; its
        descriptions are matched to checkpoints case-insensitively.
        """
        records = await self.timeline()
        labels = await asyncio.gather(*(self.ledger.get_label(r.checkpoint_id) for r in records))

        entries = []
        for record, label in zip(records, labels):
            description = None
            if descriptions is not None:
                description = descriptions.get_description(record.checkpoint_id)
            entries.append(TimelineEntry(
                record=record,
                label=label,
                description=description,
            ))
        return entries

    async def verify_timeline(self) -> list[CheckpointRecord]:
        records = await self.timeline()
        verify_lineage(records)
        logger.debug("timeline of %d checkpoints verified", len(records))
        return records


__all__ = ["Explorer"]
