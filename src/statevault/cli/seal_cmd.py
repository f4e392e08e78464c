"""Off-chain sealing commands: seal, unseal."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click

from ..capsule import DEFAULT_VERSION, Capsule
from ..envelope import from_hex, to_hex
from ..errors import ValidationError
from ..records import SealReceipt
from ..sealed import download_and_unseal, seal_and_upload
from .context import CliContext, handle_errors, read_json_file, run_async


@click.command("seal")
@click.argument("payload", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--out", "-o", type=click.Path(dir_okay=False, path_type=Path), required=True, help="Where to write the seal bundle (receipt + content key)")
@click.option("--schema", default=None, help="Schema tag stored in the capsule")
@click.option("--version", "capsule_version", default=DEFAULT_VERSION, show_default=True, help="Capsule version")
@click.option("--metadata", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="JSON file committed as metadata")
@click.pass_obj
@handle_errors
def seal_command(
    obj: CliContext,
    payload: Path,
    out: Path,
    schema: Optional[str],
    capsule_version: str,
    metadata: Optional[Path],
) -> None:
    """Seal PAYLOAD into the workspace blob store without touching the ledger.

    The bundle written to --out holds the content key; keep it private.
    """
    capsule = Capsule(payload=read_json_file(payload), version=capsule_version, schema=schema)
    metadata_value = read_json_file(metadata) if metadata else None

    sealed, receipt = run_async(seal_and_upload(capsule, obj.store(), metadata_value))
    bundle = {"receipt": receipt.to_dict(), "contentKey": to_hex(sealed.encryption_key)}
    out.write_text(json.dumps(bundle, indent=2))
    out.chmod(0o600)

    click.echo(f"state: {receipt.state_commitment}")
    click.echo(f"uri:   {receipt.ciphertext_uri}")
    click.echo(f"Seal bundle written to {out}")


@click.command("unseal")
@click.argument("bundle", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--out", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write the recovered capsule here")
@click.pass_obj
@handle_errors
def unseal_command(obj: CliContext, bundle: Path, out: Optional[Path]) -> None:
    """Download, verify and decrypt the capsule described by a seal BUNDLE."""
    data = read_json_file(bundle)
    try:
        receipt = SealReceipt.from_dict(data["receipt"])
        key = from_hex(data["contentKey"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"{bundle} is not a seal bundle") from exc

    capsule = run_async(download_and_unseal(
        receipt.ciphertext_uri,
        key,
        obj.store(),
        state_commitment=receipt.state_commitment,
        ciphertext_hash=receipt.ciphertext_hash,
    ))
    rendered = json.dumps(capsule.to_dict(), indent=2, sort_keys=True)
    if out:
        out.write_text(rendered + "\n")
        click.echo(f"Verified capsule written to {out}")
    else:
        click.echo(rendered)
