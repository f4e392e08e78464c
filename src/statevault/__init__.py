"""statevault - sealed, ledger-committed state capsules.

A publisher seals versioned state (capsules), uploads the ciphertext and
records its commitments on an append-only ledger. A consumer redeems
access, receives the content key wrapped for their public key, and
recovers the state, verifying every commitment on the way.

Layers (leaves first):
    canonical    - deterministic JSON encoding
    commitment   - keccak-256 state/ciphertext/metadata commitments
    cipher       - AES-256-GCM content sealing
    keywrap      - X25519 box key wrapping
    envelope     - key envelope addressing and codec
    lineage      - checkpoint chain verification
    orchestrator - publish/consume against ledger, store and delivery
"""

from .canonical import canonicalize, canonical_json, parse_canonical
from .capsule import (
    AGENT_SCHEMA,
    Capsule,
    create_agent_capsule,
    create_capsule,
    serialize_manifest,
)
from .cipher import decrypt, encrypt, generate_content_key
from .commitment import (
    ZERO_HASH,
    ciphertext_commitment,
    hash_bytes,
    metadata_commitment,
    state_commitment,
    verify_ciphertext_commitment,
    verify_metadata_commitment,
    verify_state_commitment,
)
from .delivery import KeyDeliveryProvider, LedgerKeyDelivery, StorageKeyDelivery
from .envelope import KeyEnvelope, deserialize_envelope, envelope_id, serialize_envelope
from .errors import *  # noqa: F401,F403
from .explorer import Explorer
from .keys import KeyStore, PublisherKeyManager
from .keywrap import KeyPair, generate_key_pair, unwrap_key, wrap_key
from .ledger import InMemoryLedger, JsonFileLedger, Ledger
from .lineage import verify_lineage, walk_lineage
from .orchestrator import ConsumeResult, PublishResult, SealingOrchestrator
from .records import (
    CheckpointDescription,
    CheckpointRecord,
    SealedCapsule,
    SealReceipt,
    TimelineEntry,
)
from .sealed import download_and_unseal, seal, seal_and_upload, unseal, verify_and_decrypt
from .storage import (
    ContentStore,
    InMemoryContentStore,
    LocalContentStore,
    StorageRouter,
    parse_storage_backend,
)

__version__ = "0.1.0"
