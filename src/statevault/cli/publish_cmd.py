"""Ledger commands: publish, fulfill, consume."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click

from ..capsule import DEFAULT_VERSION, Capsule
from ..delivery import LedgerKeyDelivery
from ..keys import PublisherKeyManager
from .context import CliContext, handle_errors, read_json_file, run_async


@click.command("publish")
@click.argument("payload", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--schema", default=None, help="Schema tag stored in the capsule")
@click.option("--version", "capsule_version", default=DEFAULT_VERSION, show_default=True, help="Capsule version")
@click.option("--label", default="", help="Free-form label recorded with the checkpoint")
@click.option("--metadata", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="JSON file committed as checkpoint metadata")
@click.pass_obj
@handle_errors
def publish_command(
    obj: CliContext,
    payload: Path,
    schema: Optional[str],
    capsule_version: str,
    label: str,
    metadata: Optional[Path],
) -> None:
    """Seal PAYLOAD (a JSON object), upload it and record a checkpoint.

    The content key is kept in the workspace key store so the checkpoint can
    later be fulfilled for consumers.
    """
    capsule = Capsule(payload=read_json_file(payload), version=capsule_version, schema=schema)
    metadata_value = read_json_file(metadata) if metadata else None

    key_store = obj.load_content_keys()
    result = run_async(
        obj.orchestrator(key_store).publish(capsule, metadata=metadata_value, label=label)
    )
    obj.save_content_keys(key_store)

    click.echo(f"checkpoint: {result.checkpoint_id}")
    click.echo(f"state:      {result.state_commitment}")
    click.echo(f"ciphertext: {result.ciphertext_hash}")
    click.echo(f"uri:        {result.ciphertext_uri}")


@click.command("fulfill")
@click.argument("checkpoint")
@click.argument("consumer")
@click.pass_obj
@handle_errors
def fulfill_command(obj: CliContext, checkpoint: str, consumer: str) -> None:
    """Wrap CHECKPOINT's content key for CONSUMER and deliver it on the ledger."""
    key_pair = obj.load_key_pair()
    orchestrator = obj.orchestrator()
    manager = PublisherKeyManager(
        key_pair,
        LedgerKeyDelivery(orchestrator.ledger),
        obj.load_content_keys(),
    )
    run_async(orchestrator.fulfill_redemption(checkpoint, consumer, key_manager=manager))
    click.echo(f"Delivered key envelope for {checkpoint} to {consumer.lower()}")


@click.command("consume")
@click.argument("checkpoint")
@click.option("--out", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write the recovered capsule here")
@click.option("--key-file", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Key pair file (default: the account's key pair)")
@click.pass_obj
@handle_errors
def consume_command(
    obj: CliContext,
    checkpoint: str,
    out: Optional[Path],
    key_file: Optional[Path],
) -> None:
    """Redeem CHECKPOINT (if needed) and recover its verified capsule.

    The envelope is fetched before redeeming; if it is not available yet,
    nothing is redeemed and the command exits with code 13.
    """
    key_pair = obj.load_key_pair(key_file)
    result = run_async(obj.orchestrator().consume(checkpoint, key_pair.secret_key))

    rendered = json.dumps(result.capsule.to_dict(), indent=2, sort_keys=True)
    if out:
        out.write_text(rendered + "\n")
        click.echo(f"Verified capsule written to {out}")
    else:
        click.echo(rendered)
