"""Tests for the dual-envelope protocol."""

import asyncio
import dataclasses

import pytest

from pqchat.config import HybridChatConfig
from pqchat.envelope import DualEnvelope
from pqchat.formats import FormatVersion
from pqchat.key_manager import KeyManager
from pqchat.protocol import DualEnvelopeProtocol, select_envelope
from pqchat.storage import InMemoryKeyStore
from pqchat.types import (
    AuthenticationFailureError,
    InvalidEnvelopeError,
    KeyNotFoundError,
    MissingParameterError,
    Role,
)

from .conftest import flip_bit
from .test_vectors import SCENARIO_MESSAGE, TEST_MESSAGES


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def protocol(alice_identity, bob_identity) -> DualEnvelopeProtocol:
    """A device holding both Alice's and Bob's keys (multi-account)."""
    manager = KeyManager(InMemoryKeyStore())
    for user_id, identity in (("alice", alice_identity), ("bob", bob_identity)):
        run(manager.store_identity_private_keys(
            user_id, identity.classical.private_key, identity.pq.private_key
        ))
    proto = DualEnvelopeProtocol(manager, HybridChatConfig(max_workers=2))
    yield proto
    proto.close()


@pytest.fixture
def envelope(protocol, alice_identity, bob_identity) -> DualEnvelope:
    return run(protocol.package_for_send(
        SCENARIO_MESSAGE, alice_identity.public_keys, bob_identity.public_keys
    ))


class TestScenarios:
    """End-to-end send and read."""

    def test_both_parties_read(self, protocol, envelope) -> None:
        """The recipient and the sender both recover the plaintext."""
        assert run(protocol.unpackage_for_read(envelope, Role.RECIPIENT, "bob")).text == SCENARIO_MESSAGE
        assert run(protocol.unpackage_for_read(envelope, Role.SENDER, "alice")).text == SCENARIO_MESSAGE

    def test_tampered_recipient_ciphertext(self, protocol, envelope) -> None:
        """Flipping the last ciphertext byte fails authentication."""
        tampered = dataclasses.replace(
            envelope.for_recipient,
            ciphertext=flip_bit(envelope.for_recipient.ciphertext, -1),
        )
        dual = DualEnvelope(for_recipient=tampered, for_sender=envelope.for_sender)
        with pytest.raises(AuthenticationFailureError):
            run(protocol.unpackage_for_read(dual, Role.RECIPIENT, "bob"))
        # The sender copy is unaffected
        assert run(protocol.unpackage_for_read(dual, Role.SENDER, "alice")).text == SCENARIO_MESSAGE

    def test_cleared_keys(self, protocol, envelope) -> None:
        """After clear_keys, reading raises KeyNotFoundError."""
        run(protocol.key_manager.clear_keys("alice"))
        assert not run(protocol.key_manager.has_keys("alice"))
        with pytest.raises(KeyNotFoundError):
            run(protocol.unpackage_for_read(envelope, Role.SENDER, "alice"))

    @pytest.mark.parametrize("message_key,message", TEST_MESSAGES.items())
    def test_round_trip(self, protocol, alice_identity, bob_identity, message_key, message) -> None:
        dual = run(protocol.package_for_send(
            message, alice_identity.public_keys, bob_identity.public_keys
        ))
        assert run(protocol.unpackage_for_read(dual, Role.RECIPIENT, "bob")).text == message
        assert run(protocol.unpackage_for_read(dual, Role.SENDER, "alice")).text == message


class TestIndependence:
    """The two halves share nothing but the plaintext."""

    def test_distinct_material(self, envelope) -> None:
        r, s = envelope.for_recipient, envelope.for_sender
        assert r.ephemeral_public_key != s.ephemeral_public_key
        assert r.nonce != s.nonce
        assert r.kem_capsule != s.kem_capsule
        assert r.ciphertext != s.ciphertext

    def test_halves_not_interchangeable(self, protocol, envelope) -> None:
        """Bob cannot open Alice's copy."""
        with pytest.raises(AuthenticationFailureError):
            run(protocol.unpackage_for_read(envelope, Role.SENDER, "bob"))

    def test_configured_format(self, alice_identity, bob_identity) -> None:
        manager = KeyManager(InMemoryKeyStore())
        run(manager.store_identity_private_keys(
            "bob", bob_identity.classical.private_key, bob_identity.pq.private_key
        ))
        protocol = DualEnvelopeProtocol(manager, HybridChatConfig.hardened())
        dual = run(protocol.package_for_send("x", alice_identity.public_keys, bob_identity.public_keys))
        assert dual.for_recipient.version is FormatVersion.SECRETBOX_HKDF
        assert dual.for_sender.version is FormatVersion.SECRETBOX_HKDF
        assert run(protocol.unpackage_for_read(dual, Role.RECIPIENT, "bob")).text == "x"


class TestConcurrency:
    """Independent messages can be processed in parallel."""

    def test_parallel_decrypt(self, protocol, alice_identity, bob_identity) -> None:
        async def scenario():
            texts = [f"message {i}" for i in range(6)]
            duals = await asyncio.gather(*(
                protocol.package_for_send(t, alice_identity.public_keys, bob_identity.public_keys)
                for t in texts
            ))
            opened = await asyncio.gather(*(
                protocol.unpackage_for_read(d, Role.RECIPIENT, "bob") for d in duals
            ))
            return texts, [o.text for o in opened]

        texts, opened = run(scenario())
        assert opened == texts


class TestSentCache:
    """The sent-plaintext cache is an optimization only."""

    def test_cache_hit(self, protocol, envelope) -> None:
        run(protocol.remember_sent("conv", "m1", "cached text"))
        assert run(protocol.read_own_message("conv", "m1", envelope, "alice")).text == "cached text"

    def test_cache_miss_uses_sender_copy(self, protocol, envelope) -> None:
        content = run(protocol.read_own_message("conv", "m2", envelope, "alice"))
        assert content.text == SCENARIO_MESSAGE
        assert run(protocol.sent_cache.retrieve("conv", "m2")) == SCENARIO_MESSAGE

    def test_cache_hit_requires_keys(self, protocol, envelope) -> None:
        """Cached plaintext is not served once our keys are gone."""
        run(protocol.remember_sent("conv", "m3", "cached text"))
        run(protocol.key_manager.clear_keys("alice"))
        with pytest.raises(KeyNotFoundError):
            run(protocol.read_own_message("conv", "m3", envelope, "alice"))


class TestSelection:
    """Test which half is selected."""

    def test_bare_envelope_for_recipient(self, envelope) -> None:
        assert select_envelope(envelope.for_recipient, Role.RECIPIENT) == envelope.for_recipient

    def test_bare_envelope_has_no_sender_copy(self, envelope) -> None:
        with pytest.raises(InvalidEnvelopeError):
            select_envelope(envelope.for_recipient, Role.SENDER)

    def test_dual_without_sender_copy(self, envelope) -> None:
        with pytest.raises(InvalidEnvelopeError):
            select_envelope(DualEnvelope(for_recipient=envelope.for_recipient), Role.SENDER)

    def test_missing_inputs(self, protocol, alice_identity) -> None:
        with pytest.raises(MissingParameterError):
            run(protocol.package_for_send(None, alice_identity.public_keys, alice_identity.public_keys))
        with pytest.raises(MissingParameterError):
            run(protocol.package_for_send("x", None, alice_identity.public_keys))
