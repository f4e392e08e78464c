"""Publish/consume orchestration against the external collaborators.

Publish:
    canonicalize -> state commitment -> metadata commitment -> content key
    -> encrypt -> ciphertext commitment -> upload -> record on ledger

Consume:
    has_redeemed? -> (no)  pre-flight fetch envelope -> redeem
                  -> (yes) fetch envelope
    -> read checkpoint -> download -> verify ciphertext -> unwrap -> decrypt
    -> parse -> verify state commitment

Redemption is irrevocable, so it only happens after the envelope has been
fetched successfully. Collaborator calls run one at a time; nothing is
retried here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, TypeVar

from .capsule import Capsule
from .commitment import verify_ciphertext_commitment
from .delivery import KeyDeliveryProvider
from .envelope import KeyEnvelope
from .errors import (
    CheckpointNotFound,
    CollaboratorError,
    EnvelopeNotYetAvailable,
    MalformedEnvelope,
    StateVaultError,
    ValidationError,
)
from .keys import KeyStore, PublisherKeyManager
from .keywrap import unwrap_key
from .ledger import Ledger
from .records import CheckpointRecord
from .sealed import seal, unseal
from .storage import ContentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PublishResult:
    checkpoint_id: str
    state_commitment: str
    ciphertext_hash: str
    metadata_hash: str
    ciphertext_uri: str
    content_key: bytes

    def __repr__(self) -> str:
        return (
            f"PublishResult(checkpoint_id={self.checkpoint_id!r}, "
            f"ciphertext_uri={self.ciphertext_uri!r}, content_key=<redacted>)"
        )


@dataclass(frozen=True)
class ConsumeResult:
    capsule: Capsule
    checkpoint: CheckpointRecord


class SealingOrchestrator:
    """Sequences sealing and key delivery for one account.

    The same class serves both roles: a publisher calls :meth:`publish` and
    :meth:`fulfill_redemption`, a consumer calls :meth:`consume`.
    """

    def __init__(
        self,
        ledger: Ledger,
        store: ContentStore,
        delivery: KeyDeliveryProvider,
        account: Optional[str] = None,
        key_store: Optional[KeyStore] = None,
    ) -> None:
        self.ledger = ledger
        self.store = store
        self.delivery = delivery
        self.account = (account or ledger.account).lower()
        self.key_store = key_store

    @property
    def collection(self) -> str:
        return self.ledger.address

    async def _call(self, step: str, pending: Awaitable[T]) -> T:
        try:
            return await pending
        except StateVaultError:
            raise
        except Exception as exc:
            raise CollaboratorError(step, exc) from exc

    # -- publisher ----------------------------------------------------------

    async def publish(
        self,
        capsule: Capsule,
        *,
        metadata: Any = None,
        label: str = "",
    ) -> PublishResult:
        sealed = seal(capsule, metadata)
        logger.debug("sealed capsule: state=%s ciphertext=%s", sealed.state_commitment, sealed.content_hash)

        uri = await self._call("upload", self.store.upload(sealed.ciphertext))
        logger.debug("ciphertext uploaded to %s", uri)

        checkpoint_id = await self._call(
            "ledger.publish",
            self.ledger.publish(
                sealed.state_commitment,
                sealed.content_hash,
                uri,
                sealed.metadata_hash,
                label,
            ),
        )
        if self.key_store is not None:
            self.key_store.put(checkpoint_id, sealed.encryption_key)
        logger.info("published checkpoint %s (%s)", checkpoint_id, uri)

        return PublishResult(
            checkpoint_id=checkpoint_id,
            state_commitment=sealed.state_commitment,
            ciphertext_hash=sealed.content_hash,
            metadata_hash=sealed.metadata_hash,
            ciphertext_uri=uri,
            content_key=sealed.encryption_key,
        )

    async def fulfill_redemption(
        self,
        checkpoint_id: str,
        consumer: str,
        *,
        key_manager: PublisherKeyManager,
    ) -> KeyEnvelope:
        """Wrap the checkpoint key for ``consumer``'s registered public key."""
        public_key = await self._call("get_key", self.ledger.get_key(consumer))
        if public_key is None:
            raise ValidationError(f"{consumer} has not registered a wrapping key")
        return await self._call(
            "fulfill_redemption",
            key_manager.fulfill_redemption(self.collection, checkpoint_id, consumer, public_key),
        )

    # -- consumer -----------------------------------------------------------

    async def register_key(self, public_key: bytes) -> None:
        await self._call("register_key", self.ledger.register_key(public_key))
        logger.info("registered wrapping key for %s", self.account)

    async def _preflight(self, checkpoint_id: str) -> KeyEnvelope:
        try:
            envelope = await self.delivery.fetch_envelope(self.collection, checkpoint_id, self.account)
            _check_binding(envelope, checkpoint_id)
            return envelope
        except Exception as exc:
            logger.info(
                "envelope for %s not available to %s; not redeeming", checkpoint_id, self.account
            )
            raise EnvelopeNotYetAvailable(checkpoint_id, self.account) from exc

    async def consume(self, checkpoint_id: str, secret_key: bytes) -> ConsumeResult:
        redeemed = await self._call(
            "has_redeemed", self.ledger.has_redeemed(self.account, checkpoint_id)
        )
        if not redeemed:
            envelope = await self._preflight(checkpoint_id)
            await self._call("redeem", self.ledger.redeem(checkpoint_id))
            logger.info("redeemed checkpoint %s as %s", checkpoint_id, self.account)
        else:
            logger.debug("checkpoint %s already redeemed; fetching envelope", checkpoint_id)
            envelope = await self._call(
                "fetch_envelope",
                self.delivery.fetch_envelope(self.collection, checkpoint_id, self.account),
            )
            _check_binding(envelope, checkpoint_id)

        record = await self._call("get_checkpoint", self.ledger.get_checkpoint(checkpoint_id))
        if record is None:
            raise CheckpointNotFound(checkpoint_id)

        ciphertext = await self._call("download", self.store.download(record.ciphertext_uri))
        verify_ciphertext_commitment(ciphertext, record.ciphertext_hash)

        content_key = unwrap_key(envelope, secret_key)
        capsule = unseal(ciphertext, content_key, state_commitment=record.state_commitment)
        logger.debug("checkpoint %s verified", checkpoint_id)
        return ConsumeResult(capsule=capsule, checkpoint=record)


def _check_binding(envelope: KeyEnvelope, checkpoint_id: str) -> None:
    if envelope.is_bound and envelope.checkpoint_id.lower() != checkpoint_id.lower():
        raise MalformedEnvelope(
            f"envelope is bound to {envelope.checkpoint_id}, not {checkpoint_id}"
        )


__all__ = ["PublishResult", "ConsumeResult", "SealingOrchestrator"]
