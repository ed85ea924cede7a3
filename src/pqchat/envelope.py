"""JSON wire encoding for hybrid and dual envelopes."""

import base64
import binascii
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from .formats import FormatVersion, parse_format_version
from .types import (
    InvalidEnvelopeError,
    NONCE_SIZE,
    PQ_CAPSULE_SIZE,
    PUBLIC_KEY_SIZE,
)


def b64encode(data: bytes) -> str:
    """Standard base64 with padding."""
    return base64.b64encode(data).decode("ascii")


def b64decode(value: Any, field_name: str) -> bytes:
    """Decode a base64 field, raising InvalidEnvelopeError on bad input."""
    if not isinstance(value, str):
        raise InvalidEnvelopeError(f"Field {field_name} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidEnvelopeError(f"Field {field_name} is not valid base64") from e


@dataclass(frozen=True)
class HybridEnvelope:
    """One plaintext encrypted to one recipient key pair."""
    ciphertext: bytes  # tag + body for secretbox formats
    nonce: bytes  # 24 bytes
    ephemeral_public_key: bytes  # 32 bytes
    kem_capsule: bytes  # 1088 bytes
    version: Optional[FormatVersion] = None  # None for untagged legacy data

    def to_dict(self) -> dict:
        data = {
            "ciphertext": b64encode(self.ciphertext),
            "nonce": b64encode(self.nonce),
            "ephemeralPublicKey": b64encode(self.ephemeral_public_key),
            "kemCapsule": b64encode(self.kem_capsule),
        }
        if self.version is not None:
            data["version"] = int(self.version)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "HybridEnvelope":
        """
        Build an envelope from its JSON object form.

        Raises:
            InvalidEnvelopeError: If a field is missing, malformed, or the
                wrong size
        """
        if not isinstance(data, dict):
            raise InvalidEnvelopeError("Envelope must be a JSON object")
        for name in ("ciphertext", "nonce", "ephemeralPublicKey", "kemCapsule"):
            if name not in data:
                raise InvalidEnvelopeError(f"Envelope missing field: {name}")

        version = data.get("version")
        if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
            raise InvalidEnvelopeError(f"Envelope version must be an integer, got {version!r}")

        envelope = cls(
            ciphertext=b64decode(data["ciphertext"], "ciphertext"),
            nonce=b64decode(data["nonce"], "nonce"),
            ephemeral_public_key=b64decode(data["ephemeralPublicKey"], "ephemeralPublicKey"),
            kem_capsule=b64decode(data["kemCapsule"], "kemCapsule"),
            version=parse_format_version(version),
        )
        envelope.validate()
        return envelope

    def validate(self) -> None:
        """Check field sizes."""
        if len(self.nonce) != NONCE_SIZE:
            raise InvalidEnvelopeError(f"Nonce must be {NONCE_SIZE} bytes, got {len(self.nonce)}")
        if len(self.ephemeral_public_key) != PUBLIC_KEY_SIZE:
            raise InvalidEnvelopeError(
                f"Ephemeral key must be {PUBLIC_KEY_SIZE} bytes, got {len(self.ephemeral_public_key)}"
            )
        if len(self.kem_capsule) != PQ_CAPSULE_SIZE:
            raise InvalidEnvelopeError(
                f"KEM capsule must be {PQ_CAPSULE_SIZE} bytes, got {len(self.kem_capsule)}"
            )


@dataclass(frozen=True)
class DualEnvelope:
    """The stored form of one message: one envelope per party."""
    for_recipient: HybridEnvelope
    for_sender: Optional[HybridEnvelope] = None  # absent on pre-dual messages

    def to_dict(self) -> dict:
        data = {"forRecipient": self.for_recipient.to_dict()}
        if self.for_sender is not None:
            data["forSender"] = self.for_sender.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "DualEnvelope":
        if not isinstance(data, dict) or "forRecipient" not in data:
            raise InvalidEnvelopeError("Dual envelope must have forRecipient")
        for_sender = data.get("forSender")
        return cls(
            for_recipient=HybridEnvelope.from_dict(data["forRecipient"]),
            for_sender=HybridEnvelope.from_dict(for_sender) if for_sender is not None else None,
        )


class ContentKind(Enum):
    """Shape of a stored message content field."""
    DUAL = "dual"
    SINGLE = "single"
    PLAINTEXT = "plaintext"


@dataclass(frozen=True)
class StoredContent:
    """A parsed message content field."""
    kind: ContentKind
    envelope: Optional[Union[DualEnvelope, HybridEnvelope]] = None
    text: Optional[str] = None


def encode_dual_envelope(envelope: DualEnvelope) -> str:
    """
    Encode a dual envelope as the opaque content string stored remotely.

    Format:
        {"forRecipient": HybridEnvelope, "forSender": HybridEnvelope}
    where each HybridEnvelope is
        {"ciphertext", "nonce", "ephemeralPublicKey", "kemCapsule": base64,
         "version": int}
    """
    return json.dumps(envelope.to_dict(), separators=(",", ":"))


def decode_dual_envelope(content: str) -> DualEnvelope:
    """Decode a content string that must be a dual envelope."""
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidEnvelopeError("Content is not JSON") from e
    return DualEnvelope.from_dict(data)


def parse_stored_content(content: str) -> StoredContent:
    """
    Classify stored content as a dual envelope, a bare envelope, or plaintext.

    Malformed envelopes (right shape, bad fields) raise rather than being
    shown as plaintext.

    Args:
        content: The opaque content string from the message store

    Returns:
        StoredContent describing what was found
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return StoredContent(kind=ContentKind.PLAINTEXT, text=content)

    if isinstance(data, dict) and "forRecipient" in data:
        return StoredContent(kind=ContentKind.DUAL, envelope=DualEnvelope.from_dict(data))

    if isinstance(data, dict) and "ciphertext" in data and "kemCapsule" in data:
        return StoredContent(kind=ContentKind.SINGLE, envelope=HybridEnvelope.from_dict(data))

    return StoredContent(kind=ContentKind.PLAINTEXT, text=content)


def is_encrypted_content(content: str) -> bool:
    """Check whether stored content holds an envelope."""
    try:
        return parse_stored_content(content).kind is not ContentKind.PLAINTEXT
    except InvalidEnvelopeError:
        return True
