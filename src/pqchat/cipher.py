"""Symmetric sealing of message bodies under a derived session key."""

from typing import Optional, Tuple

import nacl.utils
from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from .types import (
    AuthenticationFailureError,
    EncryptionError,
    MissingParameterError,
    NONCE_SIZE,
    SESSION_KEY_SIZE,
)


def _box(key: bytes) -> SecretBox:
    if key is None or len(key) != SESSION_KEY_SIZE:
        raise MissingParameterError(f"Session key must be {SESSION_KEY_SIZE} bytes")
    return SecretBox(key)


def generate_nonce() -> bytes:
    """Generate a random 24-byte secretbox nonce."""
    return nacl.utils.random(NONCE_SIZE)


def seal(plaintext: bytes, key: bytes, nonce: Optional[bytes] = None) -> Tuple[bytes, bytes]:
    """
    Authenticated-encrypt plaintext with XSalsa20-Poly1305.

    Args:
        plaintext: Bytes to encrypt (may be empty)
        key: 32-byte session key
        nonce: Explicit nonce; a fresh random one is drawn when omitted

    Returns:
        Tuple of (ciphertext, nonce); ciphertext is the 16-byte tag followed
        by the encrypted body
    """
    if plaintext is None:
        raise MissingParameterError("Plaintext is required")
    box = _box(key)
    if nonce is None:
        nonce = generate_nonce()
    try:
        sealed = box.encrypt(plaintext, nonce)
    except CryptoError as e:
        raise EncryptionError(f"Secretbox seal failed: {e}") from e
    return sealed.ciphertext, nonce


def open_sealed(ciphertext: bytes, nonce: bytes, key: bytes) -> bytes:
    """
    Open a secretbox ciphertext.

    Raises:
        AuthenticationFailureError: If the tag does not verify
    """
    box = _box(key)
    try:
        return box.decrypt(ciphertext, nonce)
    except (CryptoError, ValueError, TypeError) as e:
        raise AuthenticationFailureError("Ciphertext failed authentication") from e


def legacy_stream_xor(data: bytes, nonce: bytes, key: bytes) -> bytes:
    """
    Apply the unauthenticated XSalsa20 stream used by the legacy format.

    The keystream is taken from the same position a secretbox body uses, so
    a legacy ciphertext is a secretbox ciphertext without its tag. The
    operation is its own inverse.
    """
    box = _box(key)
    if len(nonce) != NONCE_SIZE:
        raise AuthenticationFailureError(f"Nonce must be {NONCE_SIZE} bytes")
    keystream = box.encrypt(bytes(len(data)), nonce).ciphertext[SecretBox.MACBYTES:]
    return bytes(a ^ b for a, b in zip(data, keystream))
