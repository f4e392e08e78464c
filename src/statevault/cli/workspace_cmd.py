"""Workspace setup commands: init, keygen, register."""
from __future__ import annotations

from typing import Optional

import click

from ..config import WORKSPACE_DIR, save_workspace_config
from ..envelope import to_hex
from ..keywrap import generate_key_pair
from ..ledger import JsonFileLedger
from .context import CliContext, handle_errors, run_async


@click.command("init")
@click.option("--account", "init_account", help="Account name for this workspace (becomes the publisher)")
@click.option("--force", "-f", is_flag=True, help="Re-initialize an existing workspace")
@click.pass_obj
@handle_errors
def init_command(obj: CliContext, init_account: Optional[str], force: bool) -> None:
    """Initialize a statevault workspace.

    Creates .statevault/ with a config file, an empty ledger, a blob store
    and a keys directory. The initializing account is the ledger publisher.

    \b
    Example:
        statevault init --account alice
    """
    account = (init_account or obj.account_override or obj.config.get("account") or "").lower()
    if not account:
        raise click.UsageError("pass --account to name the publisher account")

    root = obj.workspace / WORKSPACE_DIR
    if obj.ledger_path.exists() and not force:
        click.echo(f"Error: workspace already initialized at {root}", err=True)
        click.echo("Use --force to re-initialize", err=True)
        raise SystemExit(1)
    if force and obj.ledger_path.exists():
        obj.ledger_path.unlink()

    for path in (obj.keys_dir, obj.store().root):
        path.mkdir(parents=True, exist_ok=True)
    save_workspace_config(obj.workspace, {"account": account})
    obj.config["account"] = account

    ledger = JsonFileLedger.create(obj.ledger_path, account)
    click.echo(f"Initialized workspace at {root}")
    click.echo(f"  publisher:  {account}")
    click.echo(f"  collection: {ledger.address}")


@click.command("keygen")
@click.option("--name", help="Key pair name (default: the current account)")
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing key pair")
@click.pass_obj
@handle_errors
def keygen_command(obj: CliContext, name: Optional[str], force: bool) -> None:
    """Generate an X25519 key pair for wrapping content keys."""
    path = obj.key_pair_path(name)
    if path.exists() and not force:
        click.echo(f"Error: key pair already exists at {path}", err=True)
        raise SystemExit(1)
    key_pair = generate_key_pair()
    obj.save_key_pair(key_pair, path)
    click.echo(f"Wrote key pair to {path}")
    click.echo(f"  public key: {to_hex(key_pair.public_key)}")


@click.command("register")
@click.pass_obj
@handle_errors
def register_command(obj: CliContext) -> None:
    """Register this account's public key on the ledger."""
    key_pair = obj.load_key_pair()
    run_async(obj.orchestrator().register_key(key_pair.public_key))
    click.echo(f"Registered {to_hex(key_pair.public_key)} for {obj.account}")
