"""Encryption and decryption of a single hybrid envelope."""

import logging

from .agreement import decapsulate, encapsulate
from .cipher import seal
from .envelope import HybridEnvelope
from .formats import CURRENT_FORMAT, FormatVersion, combiner_for, open_with_fallback
from .keys import PublicKeyBundle
from .types import (
    AuthenticationFailureError,
    DecryptedContent,
    EncryptionError,
    MissingParameterError,
)

logger = logging.getLogger(__name__)


def encrypt_message(
    plaintext: str,
    recipient_keys: PublicKeyBundle,
    version: FormatVersion = CURRENT_FORMAT,
) -> HybridEnvelope:
    """
    Encrypt a message for one recipient key pair.

    Args:
        plaintext: Message to encrypt (may be empty)
        recipient_keys: Recipient's published classical and PQ public keys
        version: Format to write; the legacy stream format cannot be written

    Returns:
        HybridEnvelope containing the encrypted message
    """
    if plaintext is None:
        raise MissingParameterError("Plaintext is required")
    if recipient_keys is None:
        raise MissingParameterError("Recipient public keys are required")
    if version.is_legacy:
        raise EncryptionError("Refusing to write the unauthenticated legacy format")

    agreed = encapsulate(
        recipient_keys.pq_public_key,
        recipient_keys.classical_public_key,
        combiner=version.combiner,
    )
    ciphertext, nonce = seal(plaintext.encode("utf-8"), agreed.final_key)

    logger.debug(
        "Sealed %d-byte message (format %s, ciphertext %d bytes)",
        len(plaintext),
        version.name,
        len(ciphertext),
    )
    return HybridEnvelope(
        ciphertext=ciphertext,
        nonce=nonce,
        ephemeral_public_key=agreed.ephemeral_public_key,
        kem_capsule=agreed.capsule,
        version=version,
    )


def decrypt_envelope(
    envelope: HybridEnvelope,
    classical_private_key: bytes,
    pq_private_key: bytes,
) -> DecryptedContent:
    """
    Decrypt a hybrid envelope with our private keys.

    Args:
        envelope: The encrypted envelope
        classical_private_key: Our X25519 private key
        pq_private_key: Our ML-KEM-768 decapsulation key

    Returns:
        DecryptedContent; ``is_legacy`` is set for legacy-format plaintext

    Raises:
        DecapsulationError: If the capsule cannot be decapsulated
        AuthenticationFailureError: If the ciphertext does not open
    """
    if not classical_private_key or not pq_private_key:
        raise MissingParameterError("Private keys are required")

    final_key = decapsulate(
        envelope.kem_capsule,
        envelope.ephemeral_public_key,
        pq_private_key,
        classical_private_key,
        combiner=combiner_for(envelope.version),
    )
    result = open_with_fallback(envelope.ciphertext, envelope.nonce, final_key, envelope.version)

    try:
        text = result.plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise AuthenticationFailureError("Decrypted payload is not valid UTF-8") from e

    return DecryptedContent(
        text=text,
        format_version=int(result.format),
        is_legacy=result.is_legacy,
    )
