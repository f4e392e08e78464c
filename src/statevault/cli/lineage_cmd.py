"""Chain inspection commands: lineage, tag, envelope-id."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from ..commitment import is_zero_hash
from ..envelope import envelope_id
from ..explorer import Explorer
from ..ledger import Ledger
from ..lineage import verify_lineage
from ..records import CheckpointRecord
from .context import CliContext, handle_errors, run_async


@click.command("lineage")
@click.argument("checkpoint", required=False)
@click.option("--max-depth", type=int, default=None, help="Maximum number of checkpoints to walk")
@click.pass_obj
@handle_errors
def lineage_command(obj: CliContext, checkpoint: Optional[str], max_depth: Optional[int]) -> None:
    """Walk back from CHECKPOINT (default: chain head) and verify the chain."""
    ledger = obj.ledger()
    explorer = Explorer(ledger, max_depth=obj.max_depth)
    records = run_async(explorer.lineage(checkpoint, max_depth))
    label_of = run_async(_labels(ledger, records))

    # The walk is newest first; verification wants oldest first.
    oldest_first = list(reversed(records))
    complete = bool(records) and is_zero_hash(records[-1].predecessor_id)
    if complete:
        verify_lineage(oldest_first)

    table = Table(title="Checkpoint lineage", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Checkpoint", no_wrap=True)
    table.add_column("Predecessor", no_wrap=True)
    table.add_column("Label")
    table.add_column("Block", justify="right")
    table.add_column("Published")
    for position, record in enumerate(oldest_first):
        published = datetime.fromtimestamp(record.published_at, tz=timezone.utc)
        table.add_row(
            str(position),
            _short(record.checkpoint_id),
            _short(record.predecessor_id),
            label_of.get(record.checkpoint_id) or "",
            str(record.block_number),
            published.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console = Console()
    console.print(table)
    if not records:
        click.echo("No checkpoints published yet.")
    elif complete:
        click.echo(f"Lineage verified: {len(records)} checkpoint(s) back to genesis")
    else:
        click.echo(f"Lineage truncated after {len(records)} checkpoint(s); genesis not reached")


@click.command("tag")
@click.argument("checkpoint")
@click.argument("label")
@click.pass_obj
@handle_errors
def tag_command(obj: CliContext, checkpoint: str, label: str) -> None:
    """Point LABEL at CHECKPOINT (publisher only). A reused label moves."""
    run_async(obj.ledger().tag_checkpoint(checkpoint, label))
    click.echo(f"Tagged {checkpoint} as {label}")


@click.command("envelope-id")
@click.argument("collection")
@click.argument("checkpoint")
@click.argument("recipient")
@handle_errors
def envelope_id_command(collection: str, checkpoint: str, recipient: str) -> None:
    """Print the envelope address for (COLLECTION, CHECKPOINT, RECIPIENT)."""
    click.echo(envelope_id(collection, checkpoint, recipient))


async def _labels(ledger: Ledger, records: list[CheckpointRecord]) -> dict[str, Optional[str]]:
    found = await asyncio.gather(*(ledger.get_label(r.checkpoint_id) for r in records))
    return {r.checkpoint_id: label for r, label in zip(records, found)}


def _short(value: str) -> str:
    return value if len(value) <= 18 else f"{value[:10]}…{value[-6:]}"
