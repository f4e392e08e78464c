"""Ledger collaborator: the append-only checkpoint chain.

The real ledger is external. This module defines the contract the
orchestrator is written against plus two reference ledgers that share one
rule book (``LedgerBook``):

- ``InMemoryLedger``: state shared in-process; ``connect(account)`` gives
  another party a view onto the same chain.
- ``JsonFileLedger``: the same rules persisted to a JSON file, used by the
  CLI so separate invocations see one chain.

Rules: only the publisher writes checkpoints, labels and envelopes; each account
redeems a checkpoint at most once; reads are open to everyone.
"""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

from .commitment import ZERO_HASH, hash_canonical, hash_text
from .envelope import from_hex, to_hex
from .errors import LedgerError
from .records import CheckpointRecord, DeliveredEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Ledger(ABC):
    """Contract for the external append-only ledger."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Collection address (used in envelope addressing)."""

    @property
    @abstractmethod
    def account(self) -> str:
        """Account this handle acts as."""

    @abstractmethod
    async def publish(
        self,
        state_commitment: str,
        ciphertext_hash: str,
        ciphertext_uri: str,
        metadata_hash: str,
        label: str = "",
    ) -> str:
        """Append a checkpoint and return its id."""

    @abstractmethod
    async def get_checkpoint(self, checkpoint_id: str) -> Optional[CheckpointRecord]:
        """Return the record, or ``None`` if the id is unknown."""

    @abstractmethod
    async def has_redeemed(self, account: str, checkpoint_id: str) -> bool:
        ...

    @abstractmethod
    async def redeem(self, checkpoint_id: str) -> None:
        """Irrevocably spend this account's access to a checkpoint."""

    @abstractmethod
    async def register_key(self, public_key: bytes) -> None:
        ...

    @abstractmethod
    async def get_key(self, account: str) -> Optional[bytes]:
        ...

    @abstractmethod
    async def deliver_envelope(
        self,
        consumer: str,
        checkpoint_id: str,
        wrapped_key: bytes,
        nonce: bytes,
        sender_public_key: bytes,
    ) -> None:
        ...

    @abstractmethod
    async def get_envelope(
        self, consumer: str, checkpoint_id: str
    ) -> Optional[DeliveredEnvelope]:
        ...

    @abstractmethod
    async def tag_checkpoint(self, checkpoint_id: str, label: str) -> None:
        """Point ``label`` at a checkpoint; a reused label moves."""

    @abstractmethod
    async def resolve_label(self, label: str) -> Optional[str]:
        """Checkpoint id the label points at, or ``None``."""

    @abstractmethod
    async def get_label(self, checkpoint_id: str) -> Optional[str]:
        """Latest label assigned to a checkpoint, or ``None``."""

    @abstractmethod
    async def all_labels(self) -> dict[str, str]:
        ...

    @abstractmethod
    async def head(self) -> str:
        """Latest checkpoint id, or ``ZERO_HASH`` for an empty chain."""

    @abstractmethod
    async def checkpoint_count(self) -> int:
        ...

    @abstractmethod
    async def checkpoint_id_at(self, index: int) -> str:
        ...


# =============================================================================
# SHARED RULE BOOK
# =============================================================================

def new_ledger_state(publisher: str, address: Optional[str] = None) -> dict[str, Any]:
    """Fresh JSON-serializable ledger state."""
    if not publisher:
        raise LedgerError("publisher account is required")
    return {
        "address": (address or hash_text(f"collection:{publisher.lower()}")).lower(),
        "publisher": publisher.lower(),
        "block": 0,
        "checkpoints": [],
        "labels": {},
        "checkpointLabels": {},
        "redemptions": {},
        "keys": {},
        "envelopes": {},
    }


class LedgerBook:
    """Ledger rules applied to a plain state dict on behalf of one account."""

    def __init__(self, state: dict[str, Any], account: str) -> None:
        self.state = state
        self.account = account.lower()

    def _require_publisher(self, action: str) -> None:
        if self.account != self.state["publisher"]:
            raise LedgerError(f"only the publisher may {action}")

    def _next_block(self) -> int:
        self.state["block"] += 1
        return self.state["block"]

    def _index_of(self, checkpoint_id: str) -> Optional[int]:
        wanted = checkpoint_id.lower()
        for i, record in enumerate(self.state["checkpoints"]):
            if record["checkpointId"] == wanted:
                return i
        return None

    def _require_checkpoint(self, checkpoint_id: str) -> None:
        if self._index_of(checkpoint_id) is None:
            raise LedgerError(f"unknown checkpoint {checkpoint_id}")

    def head(self) -> str:
        checkpoints = self.state["checkpoints"]
        return checkpoints[-1]["checkpointId"] if checkpoints else ZERO_HASH

    def publish(
        self,
        state_commitment: str,
        ciphertext_hash: str,
        ciphertext_uri: str,
        metadata_hash: str,
        label: str,
    ) -> str:
        self._require_publisher("publish checkpoints")
        index = len(self.state["checkpoints"])
        predecessor = self.head()
        checkpoint_id = hash_canonical({
            "collection": self.state["address"],
            "index": index,
            "predecessor": predecessor,
            "stateCommitment": state_commitment.lower(),
            "ciphertextHash": ciphertext_hash.lower(),
        })
        record = CheckpointRecord(
            checkpoint_id=checkpoint_id,
            predecessor_id=predecessor,
            state_commitment=state_commitment.lower(),
            ciphertext_hash=ciphertext_hash.lower(),
            ciphertext_uri=ciphertext_uri,
            manifest_hash=metadata_hash.lower(),
            published_at=int(time.time()),
            block_number=self._next_block(),
        )
        self.state["checkpoints"].append(record.to_dict())
        if label:
            self._assign_label(checkpoint_id, label)
        return checkpoint_id

    def _assign_label(self, checkpoint_id: str, label: str) -> None:
        labels = self.state["labels"]
        by_checkpoint = self.state["checkpointLabels"]
        previous = labels.get(label)
        if previous is not None and by_checkpoint.get(previous) == label:
            del by_checkpoint[previous]
        labels[label] = checkpoint_id.lower()
        by_checkpoint[checkpoint_id.lower()] = label

    def tag_checkpoint(self, checkpoint_id: str, label: str) -> None:
        self._require_publisher("tag checkpoints")
        if not isinstance(label, str) or not label:
            raise LedgerError("label must be a non-empty string")
        self._require_checkpoint(checkpoint_id)
        self._assign_label(checkpoint_id, label)
        self._next_block()

    def resolve_label(self, label: str) -> Optional[str]:
        return self.state["labels"].get(label)

    def get_label(self, checkpoint_id: str) -> Optional[str]:
        return self.state["checkpointLabels"].get(checkpoint_id.lower())

    def all_labels(self) -> dict[str, str]:
        return dict(self.state["labels"])

    def get_checkpoint(self, checkpoint_id: str) -> Optional[CheckpointRecord]:
        index = self._index_of(checkpoint_id)
        if index is None:
            return None
        return CheckpointRecord.from_dict(self.state["checkpoints"][index])

    def has_redeemed(self, account: str, checkpoint_id: str) -> bool:
        redeemers = self.state["redemptions"].get(checkpoint_id.lower(), [])
        return account.lower() in redeemers

    def redeem(self, checkpoint_id: str) -> None:
        self._require_checkpoint(checkpoint_id)
        if self.has_redeemed(self.account, checkpoint_id):
            raise LedgerError(f"{self.account} already redeemed {checkpoint_id}")
        self.state["redemptions"].setdefault(checkpoint_id.lower(), []).append(self.account)
        self._next_block()

    def register_key(self, public_key: bytes) -> None:
        if len(public_key) != 32:
            raise LedgerError("public key must be 32 bytes")
        self.state["keys"][self.account] = to_hex(public_key)

    def get_key(self, account: str) -> Optional[bytes]:
        value = self.state["keys"].get(account.lower())
        return None if value is None else from_hex(value)

    def deliver_envelope(
        self,
        consumer: str,
        checkpoint_id: str,
        wrapped_key: bytes,
        nonce: bytes,
        sender_public_key: bytes,
    ) -> None:
        self._require_publisher("deliver envelopes")
        self._require_checkpoint(checkpoint_id)
        delivered = DeliveredEnvelope(bytes(wrapped_key), bytes(nonce), bytes(sender_public_key))
        per_consumer = self.state["envelopes"].setdefault(consumer.lower(), {})
        per_consumer[checkpoint_id.lower()] = delivered.to_dict()
        self._next_block()

    def get_envelope(self, consumer: str, checkpoint_id: str) -> Optional[DeliveredEnvelope]:
        entry = self.state["envelopes"].get(consumer.lower(), {}).get(checkpoint_id.lower())
        return None if entry is None else DeliveredEnvelope.from_dict(entry)

    def checkpoint_count(self) -> int:
        return len(self.state["checkpoints"])

    def checkpoint_id_at(self, index: int) -> str:
        checkpoints = self.state["checkpoints"]
        if index < 0 or index >= len(checkpoints):
            raise LedgerError(f"checkpoint index {index} out of range (total {len(checkpoints)})")
        return checkpoints[index]["checkpointId"]


# =============================================================================
# IN-MEMORY LEDGER
# =============================================================================

class _SharedState:
    def __init__(self, state: dict[str, Any]) -> None:
        self.state = state
        self.lock = threading.Lock()


class InMemoryLedger(Ledger):
    """Process-local ledger (testing/reference use)."""

    def __init__(
        self,
        publisher: str,
        *,
        account: Optional[str] = None,
        address: Optional[str] = None,
        _shared: Optional[_SharedState] = None,
    ) -> None:
        self._shared = _shared or _SharedState(new_ledger_state(publisher, address))
        self._account = (account or publisher).lower()

    def connect(self, account: str) -> "InMemoryLedger":
        """A handle onto the same chain acting as ``account``."""
        return InMemoryLedger(
            self._shared.state["publisher"], account=account, _shared=self._shared
        )

    def _run(self, op: Callable[[LedgerBook], T]) -> T:
        with self._shared.lock:
            return op(LedgerBook(self._shared.state, self._account))

    @property
    def address(self) -> str:
        return self._shared.state["address"]

    @property
    def account(self) -> str:
        return self._account

    @property
    def publisher(self) -> str:
        return self._shared.state["publisher"]

    async def publish(self, state_commitment, ciphertext_hash, ciphertext_uri, metadata_hash, label=""):
        checkpoint_id = self._run(
            lambda book: book.publish(
                state_commitment, ciphertext_hash, ciphertext_uri, metadata_hash, label
            )
        )
        logger.info("checkpoint %s recorded", checkpoint_id)
        return checkpoint_id

    async def get_checkpoint(self, checkpoint_id):
        return self._run(lambda book: book.get_checkpoint(checkpoint_id))

    async def has_redeemed(self, account, checkpoint_id):
        return self._run(lambda book: book.has_redeemed(account, checkpoint_id))

    async def redeem(self, checkpoint_id):
        self._run(lambda book: book.redeem(checkpoint_id))

    async def register_key(self, public_key):
        self._run(lambda book: book.register_key(public_key))

    async def get_key(self, account):
        return self._run(lambda book: book.get_key(account))

    async def deliver_envelope(self, consumer, checkpoint_id, wrapped_key, nonce, sender_public_key):
        self._run(
            lambda book: book.deliver_envelope(
                consumer, checkpoint_id, wrapped_key, nonce, sender_public_key
            )
        )

    async def get_envelope(self, consumer, checkpoint_id):
        return self._run(lambda book: book.get_envelope(consumer, checkpoint_id))

    async def tag_checkpoint(self, checkpoint_id, label):
        self._run(lambda book: book.tag_checkpoint(checkpoint_id, label))

    async def resolve_label(self, label):
        return self._run(lambda book: book.resolve_label(label))

    async def get_label(self, checkpoint_id):
        return self._run(lambda book: book.get_label(checkpoint_id))

    async def all_labels(self):
        return self._run(lambda book: book.all_labels())

    async def head(self):
        return self._run(lambda book: book.head())

    async def checkpoint_count(self):
        return self._run(lambda book: book.checkpoint_count())

    async def checkpoint_id_at(self, index):
        return self._run(lambda book: book.checkpoint_id_at(index))


# =============================================================================
# JSON FILE LEDGER
# =============================================================================

_FILE_LOCKS: Dict[str, threading.Lock] = {}
_FILE_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _FILE_LOCKS_GUARD:
        return _FILE_LOCKS.setdefault(key, threading.Lock())


class JsonFileLedger(Ledger):
    """Ledger persisted to a single JSON file.

    Every call re-reads the file, so separate processes (CLI invocations)
    observe the same chain. Writes go through a temp file and rename.
    """

    def __init__(self, path: Path, account: str, *, address: Optional[str] = None) -> None:
        self.path = Path(path)
        self._account = account.lower()
        self._lock = _lock_for(self.path)
        # Fixed for the life of the ledger file.
        if address is None:
            with self._lock:
                address = self._load()["address"]
        self._address = address

    @classmethod
    def create(
        cls,
        path: Path,
        publisher: str,
        *,
        address: Optional[str] = None,
        exist_ok: bool = False,
    ) -> "JsonFileLedger":
        path = Path(path)
        if path.exists():
            if not exist_ok:
                raise LedgerError(f"ledger already exists at {path}")
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            _write_state(path, new_ledger_state(publisher, address))
        return cls(path, publisher)

    def connect(self, account: str) -> "JsonFileLedger":
        return JsonFileLedger(self.path, account, address=self._address)

    def _load(self) -> dict[str, Any]:
        try:
            return json.loads(self.path.read_text())
        except FileNotFoundError:
            raise LedgerError(f"no ledger at {self.path}; run 'statevault init' first") from None
        except json.JSONDecodeError as exc:
            raise LedgerError(f"ledger file {self.path} is corrupt: {exc}") from exc

    def _apply(self, op: Callable[[LedgerBook], T], write: bool) -> T:
        with self._lock:
            state = self._load()
            before = copy.deepcopy(state) if write else None
            result = op(LedgerBook(state, self._account))
            if write and state != before:
                _write_state(self.path, state)
            return result

    async def _read(self, op: Callable[[LedgerBook], T]) -> T:
        return await asyncio.to_thread(self._apply, op, False)

    async def _write(self, op: Callable[[LedgerBook], T]) -> T:
        return await asyncio.to_thread(self._apply, op, True)

    @property
    def address(self) -> str:
        return self._address

    @property
    def account(self) -> str:
        return self._account

    async def publish(self, state_commitment, ciphertext_hash, ciphertext_uri, metadata_hash, label=""):
        checkpoint_id = await self._write(
            lambda book: book.publish(
                state_commitment, ciphertext_hash, ciphertext_uri, metadata_hash, label
            )
        )
        logger.info("checkpoint %s recorded in %s", checkpoint_id, self.path)
        return checkpoint_id

    async def get_checkpoint(self, checkpoint_id):
        return await self._read(lambda book: book.get_checkpoint(checkpoint_id))

    async def has_redeemed(self, account, checkpoint_id):
        return await self._read(lambda book: book.has_redeemed(account, checkpoint_id))

    async def redeem(self, checkpoint_id):
        await self._write(lambda book: book.redeem(checkpoint_id))

    async def register_key(self, public_key):
        await self._write(lambda book: book.register_key(public_key))

    async def get_key(self, account):
        return await self._read(lambda book: book.get_key(account))

    async def deliver_envelope(self, consumer, checkpoint_id, wrapped_key, nonce, sender_public_key):
        await self._write(
            lambda book: book.deliver_envelope(
                consumer, checkpoint_id, wrapped_key, nonce, sender_public_key
            )
        )

    async def get_envelope(self, consumer, checkpoint_id):
        return await self._read(lambda book: book.get_envelope(consumer, checkpoint_id))

    async def tag_checkpoint(self, checkpoint_id, label):
        await self._write(lambda book: book.tag_checkpoint(checkpoint_id, label))

    async def resolve_label(self, label):
        return await self._read(lambda book: book.resolve_label(label))

    async def get_label(self, checkpoint_id):
        return await self._read(lambda book: book.get_label(checkpoint_id))

    async def all_labels(self):
        return await self._read(lambda book: book.all_labels())

    async def head(self):
        return await self._read(lambda book: book.head())

    async def checkpoint_count(self):
        return await self._read(lambda book: book.checkpoint_count())

    async def checkpoint_id_at(self, index):
        return await self._read(lambda book: book.checkpoint_id_at(index))


def _write_state(path: Path, state: dict[str, Any]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(state, indent=2, sort_keys=True))
    tmp.replace(path)


__all__ = [
    "Ledger",
    "LedgerBook",
    "new_ledger_state",
    "InMemoryLedger",
    "JsonFileLedger",
]
