"""
Hybrid key agreement: ML-KEM-768 encapsulation combined with X25519.

Both sides derive the same 32-byte session key. The sender generates a
one-time X25519 pair and an ML-KEM capsule for every message; the recipient
recovers the same secrets from the capsule and the ephemeral public key.
"""

from dataclasses import dataclass
from enum import Enum

from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .keys import (
    box_shared_key,
    classical_keypair_from_private,
    generate_classical_keypair,
    pq_decapsulate,
    pq_encapsulate,
    x25519_ecdh,
)
from .types import (
    HYBRID_KDF_INFO_PREFIX,
    MissingParameterError,
    SESSION_KEY_SIZE,
    SHARED_SECRET_SIZE,
)


class Combiner(Enum):
    """How the post-quantum and classical shared secrets are merged."""
    # Byte-wise XOR over the NaCl box key. Reads envelopes from older clients.
    XOR = "xor"
    # HKDF-SHA256 over the raw X25519 output, bound to the capsule and public keys.
    HKDF_SHA256 = "hkdf-sha256"


@dataclass(frozen=True)
class Encapsulation:
    """Result of encapsulating to a recipient."""
    final_key: bytes  # 32 bytes
    capsule: bytes  # 1088 bytes
    ephemeral_public_key: bytes  # 32 bytes

    def __repr__(self) -> str:
        return (
            f"Encapsulation(capsule={len(self.capsule)} bytes, "
            f"ephemeral_public_key={self.ephemeral_public_key.hex()})"
        )


def combine_secrets(
    pq_secret: bytes,
    classical_secret: bytes,
    combiner: Combiner = Combiner.XOR,
    capsule: bytes = b"",
    ephemeral_public_key: bytes = b"",
    recipient_public_key: bytes = b"",
) -> bytes:
    """
    Merge the two shared secrets into one session key.

    Args:
        pq_secret: 32-byte ML-KEM shared secret
        classical_secret: 32-byte X25519 shared secret
        combiner: Combination function
        capsule: ML-KEM capsule (HKDF context only)
        ephemeral_public_key: Sender ephemeral key (HKDF context only)
        recipient_public_key: Recipient classical key (HKDF context only)

    Returns:
        32-byte session key
    """
    if len(pq_secret) != SHARED_SECRET_SIZE or len(classical_secret) != SHARED_SECRET_SIZE:
        raise MissingParameterError(
            f"Shared secrets must be {SHARED_SECRET_SIZE} bytes, got "
            f"{len(pq_secret)} and {len(classical_secret)}"
        )

    if combiner is Combiner.XOR:
        return bytes(a ^ b for a, b in zip(pq_secret, classical_secret))

    info = HYBRID_KDF_INFO_PREFIX + capsule + ephemeral_public_key + recipient_public_key
    hkdf = HKDF(algorithm=SHA256(), length=SESSION_KEY_SIZE, salt=None, info=info)
    return hkdf.derive(pq_secret + classical_secret)


def _classical_secret(private_key: bytes, public_key: bytes, combiner: Combiner) -> bytes:
    if combiner is Combiner.XOR:
        return box_shared_key(private_key, public_key)
    return x25519_ecdh(private_key, public_key)


def encapsulate(
    recipient_pq_public: bytes,
    recipient_classical_public: bytes,
    combiner: Combiner = Combiner.XOR,
) -> Encapsulation:
    """
    Derive a fresh session key for a recipient.

    Args:
        recipient_pq_public: Recipient's ML-KEM-768 encapsulation key
        recipient_classical_public: Recipient's X25519 public key
        combiner: Shared-secret combiner

    Returns:
        Encapsulation holding the session key, capsule and ephemeral public key
    """
    if not recipient_pq_public or not recipient_classical_public:
        raise MissingParameterError("Recipient public keys are required")

    ephemeral = generate_classical_keypair()
    capsule, pq_secret = pq_encapsulate(recipient_pq_public)
    classical_secret = _classical_secret(
        ephemeral.private_key, recipient_classical_public, combiner
    )

    final_key = combine_secrets(
        pq_secret,
        classical_secret,
        combiner,
        capsule=capsule,
        ephemeral_public_key=ephemeral.public_key,
        recipient_public_key=recipient_classical_public,
    )
    return Encapsulation(
        final_key=final_key,
        capsule=capsule,
        ephemeral_public_key=ephemeral.public_key,
    )


def decapsulate(
    capsule: bytes,
    sender_ephemeral_public: bytes,
    own_pq_private: bytes,
    own_classical_private: bytes,
    combiner: Combiner = Combiner.XOR,
) -> bytes:
    """
    Recover the session key on the receiving side.

    Args:
        capsule: ML-KEM capsule from the envelope
        sender_ephemeral_public: Ephemeral X25519 public key from the envelope
        own_pq_private: Our ML-KEM-768 decapsulation key
        own_classical_private: Our X25519 private key
        combiner: Shared-secret combiner the sender used

    Returns:
        32-byte session key

    Raises:
        DecapsulationError: If the capsule or PQ private key is malformed
    """
    if not own_pq_private or not own_classical_private:
        raise MissingParameterError("Own private keys are required")

    pq_secret = pq_decapsulate(capsule, own_pq_private)
    classical_secret = _classical_secret(
        own_classical_private, sender_ephemeral_public, combiner
    )

    recipient_public = b""
    if combiner is Combiner.HKDF_SHA256:
        recipient_public = classical_keypair_from_private(own_classical_private).public_key

    return combine_secrets(
        pq_secret,
        classical_secret,
        combiner,
        capsule=capsule,
        ephemeral_public_key=sender_ephemeral_public,
        recipient_public_key=recipient_public,
    )
