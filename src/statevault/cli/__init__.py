"""statevault CLI - sealed, ledger-committed state capsules.

Commands:
    init         - Initialize a workspace (ledger, blob store, keys)
    keygen       - Generate a wrapping key pair
    register     - Register the account's public key on the ledger
    publish      - Seal a payload and record a checkpoint
    fulfill      - Deliver a checkpoint key to a consumer
    consume      - Redeem and recover a verified checkpoint
    seal/unseal  - Off-chain sealing to the blob store
    lineage      - Walk and verify the checkpoint chain
    tag          - Point a label at a checkpoint
    envelope-id  - Compute an envelope address
"""
from __future__ import annotations

import logging
from typing import Optional

import click

from .context import build_context
from .lineage_cmd import envelope_id_command, lineage_command, tag_command
from .publish_cmd import consume_command, fulfill_command, publish_command
from .seal_cmd import seal_command, unseal_command
from .workspace_cmd import init_command, keygen_command, register_command


def _configure_logging(level_name: str, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, str(level_name).upper(), logging.WARNING)
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("statevault").setLevel(level)


@click.group()
@click.version_option(version="0.1.0", prog_name="statevault")
@click.option("-w", "--workspace", type=click.Path(file_okay=False), default=None, help="Workspace root (default: current directory)")
@click.option("--account", default=None, help="Account to act as (overrides config)")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="Global config file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    workspace: Optional[str],
    account: Optional[str],
    config_path: Optional[str],
    verbose: bool,
) -> None:
    """statevault - sealed state capsules on an append-only ledger

    \b
    Quick start:
      statevault init --account alice
      statevault keygen && statevault register
      statevault publish state.json
      statevault --account bob consume <checkpoint>
    """
    obj = build_context(workspace, account, config_path)
    _configure_logging(obj.config.get("log_level", "WARNING"), verbose)
    ctx.obj = obj


cli.add_command(init_command, name="init")
cli.add_command(keygen_command, name="keygen")
cli.add_command(register_command, name="register")
cli.add_command(publish_command, name="publish")
cli.add_command(fulfill_command, name="fulfill")
cli.add_command(consume_command, name="consume")
cli.add_command(seal_command, name="seal")
cli.add_command(unseal_command, name="unseal")
cli.add_command(lineage_command, name="lineage")
cli.add_command(tag_command, name="tag")
cli.add_command(envelope_id_command, name="envelope-id")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
