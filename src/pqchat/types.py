"""Type definitions and constants for pqchat."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# X25519 constants
PUBLIC_KEY_SIZE = 32
PRIVATE_KEY_SIZE = 32
SHARED_SECRET_SIZE = 32

# ML-KEM-768 constants (FIPS 203, k = 3)
MLKEM_K = 3
PQ_PUBLIC_KEY_SIZE = 384 * MLKEM_K + 32  # 1184
PQ_PRIVATE_KEY_SIZE = 768 * MLKEM_K + 96  # 2400
PQ_CAPSULE_SIZE = 1088

# Secretbox (XSalsa20-Poly1305) constants
NONCE_SIZE = 24
TAG_SIZE = 16
SESSION_KEY_SIZE = 32

# HKDF combiner context
HYBRID_KDF_INFO_PREFIX = b"pqchat-hybrid-v2"


class Role(Enum):
    """Which half of a dual envelope the reader opens."""
    SENDER = "sender"
    RECIPIENT = "recipient"


@dataclass
class DecryptedContent:
    """Decrypted message content with its provenance."""
    text: str
    format_version: Optional[int] = None
    is_legacy: bool = False


# Exception types
class HybridChatError(Exception):
    """Base exception for pqchat errors."""
    pass


class MissingParameterError(HybridChatError):
    """Key material or plaintext was absent at call time."""
    pass


class InvalidPublicKeyError(HybridChatError):
    """Invalid public key format or length."""
    pass


class KeyNotFoundError(HybridChatError):
    """No local private key for the requested user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Key not found for user: {user_id}")
        self.user_id = user_id


class DecapsulationError(HybridChatError):
    """Post-quantum decapsulation failed."""
    pass


class AuthenticationFailureError(HybridChatError):
    """Symmetric open failed under every attempted construction."""
    pass


class EncryptionError(HybridChatError):
    """Encryption failed."""
    pass


class InvalidEnvelopeError(HybridChatError):
    """Invalid envelope format."""
    pass


class StorageError(HybridChatError):
    """Local persistent storage operation failed."""
    pass


class PublicKeyNotFoundError(HybridChatError):
    """No published public keys for a user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Public keys not found for user: {user_id}")
        self.user_id = user_id
