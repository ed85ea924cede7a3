"""
pqchat - Hybrid post-quantum end-to-end message encryption

Python implementation of X25519 + ML-KEM-768 key agreement with
XSalsa20-Poly1305 sealing and dual (recipient + sender) envelopes.
"""

import logging

from .keys import (
    ClassicalKeyPair,
    PqKeyPair,
    IdentityKeyPair,
    PublicKeyBundle,
    generate_identity_keypair,
    generate_classical_keypair,
    generate_pq_keypair,
)
from .agreement import Combiner, Encapsulation, encapsulate, decapsulate, combine_secrets
from .cipher import seal, open_sealed
from .formats import FormatVersion, OpenResult, CURRENT_FORMAT, open_with_fallback
from .envelope import (
    HybridEnvelope,
    DualEnvelope,
    ContentKind,
    StoredContent,
    encode_dual_envelope,
    decode_dual_envelope,
    parse_stored_content,
)
from .crypto import encrypt_message, decrypt_envelope
from .types import (
    DecryptedContent,
    Role,
    HybridChatError,
    MissingParameterError,
    InvalidPublicKeyError,
    KeyNotFoundError,
    DecapsulationError,
    AuthenticationFailureError,
    EncryptionError,
    InvalidEnvelopeError,
    StorageError,
    PublicKeyNotFoundError,
)
from .storage import (
    KeyStore,
    InMemoryKeyStore,
    FileKeyStore,
    KeyRef,
    KeySlot,
    PublicKeyCache,
    SentMessageCache,
    InMemorySentMessageCache,
)
from .key_manager import KeyManager
from .protocol import DualEnvelopeProtocol
from .config import HybridChatConfig, ConfigError
from .models import MessageDirection, DecryptionStatus, Message, StoredMessage
from .directory import ProfileStore, MessageStore, InMemoryProfileStore, InMemoryMessageStore
from .provisioning import KeyProvisioner, KeyStatus, ProvisioningResult
from .client import HybridChatClient

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Keys
    "ClassicalKeyPair",
    "PqKeyPair",
    "IdentityKeyPair",
    "PublicKeyBundle",
    "generate_identity_keypair",
    "generate_classical_keypair",
    "generate_pq_keypair",
    # Agreement
    "Combiner",
    "Encapsulation",
    "encapsulate",
    "decapsulate",
    "combine_secrets",
    # Cipher and formats
    "seal",
    "open_sealed",
    "FormatVersion",
    "OpenResult",
    "CURRENT_FORMAT",
    "open_with_fallback",
    # Envelope
    "HybridEnvelope",
    "DualEnvelope",
    "ContentKind",
    "StoredContent",
    "encode_dual_envelope",
    "decode_dual_envelope",
    "parse_stored_content",
    # Crypto
    "encrypt_message",
    "decrypt_envelope",
    # Types
    "DecryptedContent",
    "Role",
    # Errors
    "HybridChatError",
    "MissingParameterError",
    "InvalidPublicKeyError",
    "KeyNotFoundError",
    "DecapsulationError",
    "AuthenticationFailureError",
    "EncryptionError",
    "InvalidEnvelopeError",
    "StorageError",
    "PublicKeyNotFoundError",
    "ConfigError",
    # Storage
    "KeyStore",
    "InMemoryKeyStore",
    "FileKeyStore",
    "KeyRef",
    "KeySlot",
    "PublicKeyCache",
    "SentMessageCache",
    "InMemorySentMessageCache",
    # Components
    "KeyManager",
    "DualEnvelopeProtocol",
    "HybridChatConfig",
    "KeyProvisioner",
    "KeyStatus",
    "ProvisioningResult",
    "HybridChatClient",
    # Models
    "MessageDirection",
    "DecryptionStatus",
    "Message",
    "StoredMessage",
    # Collaborators
    "ProfileStore",
    "MessageStore",
    "InMemoryProfileStore",
    "InMemoryMessageStore",
]
