"""Tests for envelope JSON encoding."""

import json

import pytest

from pqchat.crypto import encrypt_message
from pqchat.envelope import (
    ContentKind,
    DualEnvelope,
    HybridEnvelope,
    decode_dual_envelope,
    encode_dual_envelope,
    is_encrypted_content,
    parse_stored_content,
)
from pqchat.formats import FormatVersion
from pqchat.types import InvalidEnvelopeError


@pytest.fixture(scope="module")
def envelope(bob_identity) -> HybridEnvelope:
    return encrypt_message("wire test", bob_identity.public_keys)


@pytest.fixture(scope="module")
def dual(envelope, alice_identity) -> DualEnvelope:
    return DualEnvelope(
        for_recipient=envelope,
        for_sender=encrypt_message("wire test", alice_identity.public_keys),
    )


class TestEncoding:
    """Test the JSON wire shape."""

    def test_field_names(self, dual: DualEnvelope) -> None:
        """The stored JSON uses the documented field names."""
        data = json.loads(encode_dual_envelope(dual))
        assert set(data) == {"forRecipient", "forSender"}
        assert set(data["forRecipient"]) == {
            "ciphertext",
            "nonce",
            "ephemeralPublicKey",
            "kemCapsule",
            "version",
        }
        assert data["forRecipient"]["version"] == int(FormatVersion.SECRETBOX)

    def test_decode(self, dual: DualEnvelope) -> None:
        """Encoded content decodes to an equal envelope."""
        assert decode_dual_envelope(encode_dual_envelope(dual)) == dual

    def test_untagged_envelope_has_no_version(self, envelope: HybridEnvelope) -> None:
        """Untagged envelopes omit the version field."""
        untagged = HybridEnvelope(
            ciphertext=envelope.ciphertext,
            nonce=envelope.nonce,
            ephemeral_public_key=envelope.ephemeral_public_key,
            kem_capsule=envelope.kem_capsule,
        )
        data = untagged.to_dict()
        assert "version" not in data
        assert HybridEnvelope.from_dict(data).version is None


class TestValidation:
    """Test rejection of malformed envelopes."""

    def test_missing_field(self, envelope: HybridEnvelope) -> None:
        data = envelope.to_dict()
        del data["kemCapsule"]
        with pytest.raises(InvalidEnvelopeError, match="kemCapsule"):
            HybridEnvelope.from_dict(data)

    def test_bad_base64(self, envelope: HybridEnvelope) -> None:
        data = envelope.to_dict()
        data["nonce"] = "***"
        with pytest.raises(InvalidEnvelopeError, match="base64"):
            HybridEnvelope.from_dict(data)

    def test_wrong_nonce_size(self, envelope: HybridEnvelope) -> None:
        data = envelope.to_dict()
        data["nonce"] = "AAAA"
        with pytest.raises(InvalidEnvelopeError, match="Nonce"):
            HybridEnvelope.from_dict(data)

    def test_wrong_capsule_size(self, envelope: HybridEnvelope) -> None:
        data = envelope.to_dict()
        data["kemCapsule"] = "AAAA"
        with pytest.raises(InvalidEnvelopeError, match="capsule"):
            HybridEnvelope.from_dict(data)

    def test_unknown_version(self, envelope: HybridEnvelope) -> None:
        data = envelope.to_dict()
        data["version"] = 7
        with pytest.raises(InvalidEnvelopeError, match="Unknown format version"):
            HybridEnvelope.from_dict(data)

    def test_non_integer_version(self, envelope: HybridEnvelope) -> None:
        data = envelope.to_dict()
        data["version"] = "1"
        with pytest.raises(InvalidEnvelopeError):
            HybridEnvelope.from_dict(data)


class TestStoredContent:
    """Test classification of stored content."""

    def test_dual(self, dual: DualEnvelope) -> None:
        content = parse_stored_content(encode_dual_envelope(dual))
        assert content.kind is ContentKind.DUAL
        assert content.envelope == dual

    def test_dual_without_sender_copy(self, envelope: HybridEnvelope) -> None:
        """Older dual-less messages carry only forRecipient."""
        content = parse_stored_content(json.dumps({"forRecipient": envelope.to_dict()}))
        assert content.kind is ContentKind.DUAL
        assert content.envelope.for_sender is None

    def test_bare_envelope(self, envelope: HybridEnvelope) -> None:
        content = parse_stored_content(json.dumps(envelope.to_dict()))
        assert content.kind is ContentKind.SINGLE
        assert content.envelope == envelope

    @pytest.mark.parametrize(
        "raw",
        ["hello there", "", "42", '{"text": "hi"}', "[1, 2, 3]"],
    )
    def test_plaintext(self, raw: str) -> None:
        """Anything that is not an envelope is legacy plaintext."""
        content = parse_stored_content(raw)
        assert content.kind is ContentKind.PLAINTEXT
        assert content.text == raw
        assert not is_encrypted_content(raw)

    def test_malformed_dual_raises(self) -> None:
        """An envelope-shaped object with bad fields is not shown as text."""
        raw = json.dumps({"forRecipient": {"ciphertext": "AAAA"}})
        with pytest.raises(InvalidEnvelopeError):
            parse_stored_content(raw)
        assert is_encrypted_content(raw)
