"""Workspace wiring shared by CLI commands."""
from __future__ import annotations

import asyncio
import functools
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
from rich.console import Console
from rich.markup import escape

from ..config import load_config
from ..delivery import LedgerKeyDelivery
from ..envelope import from_hex, to_hex
from ..errors import StateVaultError, ValidationError
from ..keys import KeyStore
from ..keywrap import KeyPair
from ..ledger import JsonFileLedger
from ..orchestrator import SealingOrchestrator
from ..storage import LocalContentStore
from .exit_codes import exit_code_for, guidance_for

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTENT_KEYS_FILE = "content_keys.json"


@dataclass
class CliContext:
    workspace: Path
    config: dict
    account_override: Optional[str] = None

    @property
    def account(self) -> str:
        account = self.account_override or self.config.get("account")
        if not account:
            raise click.UsageError(
                "no account configured; pass --account or run 'statevault init --account NAME'"
            )
        return account.lower()

    @property
    def ledger_path(self) -> Path:
        return Path(self.config["ledger"]["path"])

    @property
    def keys_dir(self) -> Path:
        return Path(self.config["keys"]["dir"])

    @property
    def max_depth(self) -> int:
        return int(self.config.get("lineage", {}).get("max_depth", 10000))

    def ledger(self) -> JsonFileLedger:
        return JsonFileLedger(self.ledger_path, self.account)

    def store(self) -> LocalContentStore:
        return LocalContentStore(Path(self.config["storage"]["root"]))

    def orchestrator(self, key_store: Optional[KeyStore] = None) -> SealingOrchestrator:
        ledger = self.ledger()
        return SealingOrchestrator(
            ledger,
            self.store(),
            LedgerKeyDelivery(ledger),
            account=self.account,
            key_store=key_store,
        )

    # -- key material ---------------------------------------------------------

    def key_pair_path(self, name: Optional[str] = None) -> Path:
        return self.keys_dir / f"{(name or self.account).lower()}.json"

    def load_key_pair(self, path: Optional[Path] = None) -> KeyPair:
        path = path or self.key_pair_path()
        try:
            data = json.loads(path.read_text())
            return KeyPair.from_secret_key(from_hex(data["secretKey"]))
        except FileNotFoundError:
            raise click.ClickException(
                f"no key pair at {path}; run 'statevault keygen' first"
            ) from None
        except (KeyError, ValueError) as exc:
            raise ValidationError(f"key file {path} is malformed") from exc

    def save_key_pair(self, key_pair: KeyPair, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({
            "publicKey": to_hex(key_pair.public_key),
            "secretKey": to_hex(key_pair.secret_key),
        }, indent=2))
        path.chmod(0o600)

    def load_content_keys(self) -> KeyStore:
        path = self.keys_dir / CONTENT_KEYS_FILE
        if not path.exists():
            return KeyStore()
        try:
            return KeyStore.from_hex_map(json.loads(path.read_text()))
        except json.JSONDecodeError as exc:
            raise ValidationError(f"content key file {path} is corrupt") from exc

    def save_content_keys(self, key_store: KeyStore) -> None:
        path = self.keys_dir / CONTENT_KEYS_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(key_store.to_hex_map(), indent=2, sort_keys=True))
        path.chmod(0o600)


def build_context(
    workspace: Optional[str],
    account: Optional[str],
    config_path: Optional[str],
) -> CliContext:
    root = Path(workspace or ".").resolve()
    config = load_config(Path(config_path) if config_path else None, root)
    return CliContext(workspace=root, config=config, account_override=account)


def run_async(pending: Awaitable[T]) -> T:
    return asyncio.run(pending)


def read_json_file(path: Path) -> Any:
    try:
        return json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{path} is not valid JSON: {exc}") from exc


def handle_errors(func: Callable[..., T]) -> Callable[..., T]:
    """Map statevault errors to stable exit codes with a readable message."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except StateVaultError as exc:
            console = Console(stderr=True)
            console.print(f"[red]Error:[/red] {escape(str(exc))}", highlight=False)
            hint = guidance_for(exc)
            if hint:
                console.print(f"[dim]{escape(hint)}[/dim]", highlight=False)
            logger.debug("command failed", exc_info=True)
            raise SystemExit(exit_code_for(exc))

    return wrapper


__all__ = [
    "CliContext",
    "build_context",
    "run_async",
    "read_json_file",
    "handle_errors",
]
