"""Content store interfaces and reference backends.

Stores move opaque ciphertext blobs. Integrity is never trusted to the
store: callers verify the ciphertext commitment after every download.
"""
from __future__ import annotations

import asyncio
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from .commitment import hash_bytes
from .errors import ContentNotFound, ValidationError

logger = logging.getLogger(__name__)

_CID_V0 = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")
_CID_V1 = re.compile(r"^baf[yk][a-z2-7]+$")
_HEX_NAME = re.compile(r"^[0-9a-f]{64}$")


class ContentStore(ABC):
    """Upload/download contract for ciphertext blobs."""

    @abstractmethod
    async def upload(self, data: bytes) -> str:
        """Store ``data`` and return a URI that :meth:`download` accepts."""

    @abstractmethod
    async def download(self, uri: str) -> bytes:
        """Return the bytes stored at ``uri`` or raise ``ContentNotFound``."""


# =============================================================================
# BACKEND DETECTION
# =============================================================================

@dataclass(frozen=True)
class StorageTarget:
    backend: str
    ref: str


_SCHEMES = {
    "ar://": "arweave",
    "ipfs://": "ipfs",
    "fil://": "filecoin",
    "mem://": "mem",
    "local://": "local",
}


def parse_storage_backend(uri: str) -> StorageTarget:
    """Detect which backend a URI (or bare CID) belongs to."""
    if not uri:
        raise ValidationError("storage URI is empty")
    for prefix, backend in _SCHEMES.items():
        if uri.startswith(prefix):
            return StorageTarget(backend, uri[len(prefix):])
    if uri.startswith("http://") or uri.startswith("https://"):
        return StorageTarget("http", uri)
    if _CID_V0.match(uri) or _CID_V1.match(uri):
        return StorageTarget("ipfs", uri)
    raise ValidationError(f"unrecognized storage URI: {uri}")


def _content_name(data: bytes) -> str:
    return hash_bytes(data)[2:]


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryContentStore(ContentStore):
    """Process-local store (testing/reference use)."""

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    async def upload(self, data: bytes) -> str:
        name = _content_name(data)
        with self._lock:
            self._blobs[name] = bytes(data)
        return f"mem://{name}"

    async def download(self, uri: str) -> bytes:
        target = parse_storage_backend(uri)
        if target.backend != "mem":
            raise ValidationError(f"in-memory store cannot serve {uri}")
        with self._lock:
            data = self._blobs.get(target.ref)
        if data is None:
            raise ContentNotFound(uri)
        return data

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)


# =============================================================================
# LOCAL FILESYSTEM
# =============================================================================

class LocalContentStore(ContentStore):
    """Content-addressed files under ``root`` (one file per blob)."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _path(self, uri: str) -> Path:
        target = parse_storage_backend(uri)
        if target.backend != "local":
            raise ValidationError(f"local store cannot serve {uri}")
        if not _HEX_NAME.match(target.ref):
            raise ValidationError(f"invalid local content reference: {target.ref}")
        return self.root / target.ref

    def _write(self, name: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / name
        if path.exists():
            return
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    async def upload(self, data: bytes) -> str:
        name = _content_name(data)
        await asyncio.to_thread(self._write, name, bytes(data))
        logger.debug("stored %d bytes at local://%s", len(data), name)
        return f"local://{name}"

    async def download(self, uri: str) -> bytes:
        path = self._path(uri)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise ContentNotFound(uri) from None


# =============================================================================
# ROUTER
# =============================================================================

class StorageRouter(ContentStore):
    """Dispatch downloads by URI backend; uploads go to one default backend."""

    def __init__(
        self,
        providers: Mapping[str, ContentStore],
        *,
        default: Optional[str] = None,
    ) -> None:
        if not providers:
            raise ValidationError("storage router needs at least one provider")
        self._providers = dict(providers)
        self.default = default or next(iter(self._providers))
        if self.default not in self._providers:
            raise ValidationError(f"default backend '{self.default}' is not registered")

    def provider_for(self, uri: str) -> ContentStore:
        backend = parse_storage_backend(uri).backend
        provider = self._providers.get(backend)
        if provider is None:
            raise ValidationError(f"no provider registered for backend '{backend}'")
        return provider

    async def upload(self, data: bytes) -> str:
        return await self._providers[self.default].upload(data)

    async def download(self, uri: str) -> bytes:
        return await self.provider_for(uri).download(uri)


__all__ = [
    "ContentStore",
    "StorageTarget",
    "parse_storage_backend",
    "InMemoryContentStore",
    "LocalContentStore",
    "StorageRouter",
]
