"""Key generation and raw key primitives for pqchat."""

from dataclasses import dataclass, field
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from kyber_py.ml_kem import ML_KEM_768
from nacl.bindings import crypto_box_beforenm
from nacl.exceptions import CryptoError

from .types import (
    DecapsulationError,
    InvalidPublicKeyError,
    MissingParameterError,
    MLKEM_K,
    PQ_CAPSULE_SIZE,
    PQ_PRIVATE_KEY_SIZE,
    PQ_PUBLIC_KEY_SIZE,
    PRIVATE_KEY_SIZE,
    PUBLIC_KEY_SIZE,
)


@dataclass(frozen=True)
class ClassicalKeyPair:
    """X25519 key pair as raw bytes."""
    public_key: bytes  # 32 bytes
    private_key: bytes = field(repr=False)  # 32 bytes


@dataclass(frozen=True)
class PqKeyPair:
    """ML-KEM-768 key pair as raw bytes."""
    public_key: bytes  # 1184 bytes
    private_key: bytes = field(repr=False)  # 2400 bytes


@dataclass(frozen=True)
class PublicKeyBundle:
    """The public halves of an identity, as published to the profile store."""
    classical_public_key: bytes
    pq_public_key: bytes


@dataclass(frozen=True)
class IdentityKeyPair:
    """A classical and a post-quantum key pair forming one identity."""
    classical: ClassicalKeyPair
    pq: PqKeyPair

    @property
    def public_keys(self) -> PublicKeyBundle:
        """The public halves of both pairs."""
        return PublicKeyBundle(
            classical_public_key=self.classical.public_key,
            pq_public_key=self.pq.public_key,
        )


def generate_classical_keypair() -> ClassicalKeyPair:
    """
    Generate a random X25519 key pair.

    Returns:
        ClassicalKeyPair with raw 32-byte keys
    """
    private_key = X25519PrivateKey.generate()
    return ClassicalKeyPair(
        public_key=public_key_to_bytes(private_key.public_key()),
        private_key=private_key_to_bytes(private_key),
    )


def classical_keypair_from_private(private_bytes: bytes) -> ClassicalKeyPair:
    """Rebuild an X25519 key pair from its raw private half."""
    private_key = private_key_from_bytes(private_bytes)
    return ClassicalKeyPair(
        public_key=public_key_to_bytes(private_key.public_key()),
        private_key=bytes(private_bytes),
    )


def generate_pq_keypair() -> PqKeyPair:
    """
    Generate an ML-KEM-768 key pair.

    This is CPU-bound lattice arithmetic; async callers should run it in an
    executor.

    Returns:
        PqKeyPair with a 1184-byte encapsulation key and 2400-byte
        decapsulation key
    """
    ek, dk = ML_KEM_768.keygen()
    return PqKeyPair(public_key=ek, private_key=dk)


def generate_identity_keypair() -> IdentityKeyPair:
    """Generate a fresh classical pair and a fresh post-quantum pair."""
    return IdentityKeyPair(
        classical=generate_classical_keypair(),
        pq=generate_pq_keypair(),
    )


def pq_public_from_private(pq_private: bytes) -> bytes:
    """
    Extract the encapsulation key embedded in an ML-KEM decapsulation key.

    An ML-KEM decapsulation key is laid out as dk_pke || ek || H(ek) || z,
    so the public half can be recovered without re-running key generation.
    """
    if len(pq_private) != PQ_PRIVATE_KEY_SIZE:
        raise MissingParameterError(
            f"PQ private key must be {PQ_PRIVATE_KEY_SIZE} bytes, got {len(pq_private)}"
        )
    offset = 384 * MLKEM_K
    return pq_private[offset : offset + PQ_PUBLIC_KEY_SIZE]


def x25519_ecdh(private_key: bytes, public_key: bytes) -> bytes:
    """
    Perform X25519 ECDH key exchange on raw keys.

    Args:
        private_key: Our 32-byte private key
        public_key: Their 32-byte public key

    Returns:
        32-byte shared secret

    Raises:
        InvalidPublicKeyError: If the peer key is malformed or low-order
    """
    peer = public_key_from_bytes(public_key)
    try:
        return private_key_from_bytes(private_key).exchange(peer)
    except ValueError as e:
        raise InvalidPublicKeyError(f"X25519 exchange failed: {e}") from e


def box_shared_key(private_key: bytes, public_key: bytes) -> bytes:
    """
    NaCl box precomputation: HSalsa20 over the X25519 output.

    This is ``crypto_box_beforenm``, the classical secret used by the XOR
    formats and by every envelope written before format tagging.

    Args:
        private_key: Our 32-byte private key
        public_key: Their 32-byte public key

    Returns:
        32-byte shared key

    Raises:
        InvalidPublicKeyError: If the peer key is malformed or low-order
    """
    if len(public_key) != PUBLIC_KEY_SIZE:
        raise InvalidPublicKeyError(
            f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(public_key)}"
        )
    if len(private_key) != PRIVATE_KEY_SIZE:
        raise MissingParameterError(
            f"Private key must be {PRIVATE_KEY_SIZE} bytes, got {len(private_key)}"
        )
    try:
        return crypto_box_beforenm(public_key, private_key)
    except CryptoError as e:
        raise InvalidPublicKeyError(f"X25519 exchange failed: {e}") from e


def pq_encapsulate(pq_public_key: bytes) -> Tuple[bytes, bytes]:
    """
    Run ML-KEM-768 encapsulation against a public key.

    Returns:
        Tuple of (capsule, shared_secret)
    """
    if len(pq_public_key) != PQ_PUBLIC_KEY_SIZE:
        raise InvalidPublicKeyError(
            f"PQ public key must be {PQ_PUBLIC_KEY_SIZE} bytes, got {len(pq_public_key)}"
        )
    try:
        shared_secret, capsule = ML_KEM_768.encaps(pq_public_key)
    except ValueError as e:
        raise InvalidPublicKeyError(f"ML-KEM encapsulation rejected key: {e}") from e
    return capsule, shared_secret


def pq_decapsulate(capsule: bytes, pq_private_key: bytes) -> bytes:
    """
    Run ML-KEM-768 decapsulation.

    A well-formed capsule under the wrong key does not fail here: ML-KEM
    returns an implicit-rejection secret and the mismatch shows up when the
    symmetric layer refuses to open.

    Raises:
        DecapsulationError: If the capsule or private key is malformed
    """
    if len(capsule) != PQ_CAPSULE_SIZE:
        raise DecapsulationError(
            f"Capsule must be {PQ_CAPSULE_SIZE} bytes, got {len(capsule)}"
        )
    if len(pq_private_key) != PQ_PRIVATE_KEY_SIZE:
        raise DecapsulationError(
            f"PQ private key must be {PQ_PRIVATE_KEY_SIZE} bytes, got {len(pq_private_key)}"
        )
    try:
        return ML_KEM_768.decaps(pq_private_key, capsule)
    except ValueError as e:
        raise DecapsulationError(f"ML-KEM decapsulation failed: {e}") from e


def public_key_to_bytes(public_key: X25519PublicKey) -> bytes:
    """Convert X25519 public key to raw bytes."""
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


def private_key_to_bytes(private_key: X25519PrivateKey) -> bytes:
    """Convert X25519 private key to raw bytes."""
    return private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())


def public_key_from_bytes(data: bytes) -> X25519PublicKey:
    """Create X25519 public key from raw bytes."""
    if len(data) != PUBLIC_KEY_SIZE:
        raise InvalidPublicKeyError(
            f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(data)}"
        )
    return X25519PublicKey.from_public_bytes(data)


def private_key_from_bytes(data: bytes) -> X25519PrivateKey:
    """Create X25519 private key from raw bytes."""
    if len(data) != PRIVATE_KEY_SIZE:
        raise MissingParameterError(
            f"Private key must be {PRIVATE_KEY_SIZE} bytes, got {len(data)}"
        )
    return X25519PrivateKey.from_private_bytes(data)
