"""Tests for hybrid key agreement."""

import pytest

from pqchat.agreement import Combiner, combine_secrets, decapsulate, encapsulate
from pqchat.types import DecapsulationError, MissingParameterError, PQ_CAPSULE_SIZE

from .conftest import flip_bit


class TestCombiner:
    """Test the shared-secret combiners."""

    def test_xor(self) -> None:
        """XOR combines byte-wise."""
        a = bytes(range(32))
        b = bytes([0xFF] * 32)
        assert combine_secrets(a, b, Combiner.XOR) == bytes(x ^ 0xFF for x in range(32))

    def test_hkdf_binds_context(self) -> None:
        """HKDF output changes with the bound context."""
        a = bytes(32)
        b = bytes([1] * 32)
        k1 = combine_secrets(a, b, Combiner.HKDF_SHA256, capsule=b"c1")
        k2 = combine_secrets(a, b, Combiner.HKDF_SHA256, capsule=b"c2")
        assert len(k1) == 32
        assert k1 != k2

    def test_hkdf_is_not_xor(self) -> None:
        """The two combiners produce different keys."""
        a = bytes(range(32))
        b = bytes(range(32, 64))
        assert combine_secrets(a, b, Combiner.XOR) != combine_secrets(a, b, Combiner.HKDF_SHA256)

    def test_wrong_secret_length(self) -> None:
        """Secrets must be 32 bytes."""
        with pytest.raises(MissingParameterError):
            combine_secrets(b"short", bytes(32))


class TestEncapsulation:
    """Test encapsulate/decapsulate symmetry."""

    @pytest.mark.parametrize("combiner", list(Combiner))
    def test_keys_match(self, bob_identity, combiner: Combiner) -> None:
        """Both sides derive byte-identical session keys."""
        agreed = encapsulate(
            bob_identity.pq.public_key,
            bob_identity.classical.public_key,
            combiner=combiner,
        )
        recovered = decapsulate(
            agreed.capsule,
            agreed.ephemeral_public_key,
            bob_identity.pq.private_key,
            bob_identity.classical.private_key,
            combiner=combiner,
        )
        assert len(agreed.final_key) == 32
        assert len(agreed.capsule) == PQ_CAPSULE_SIZE
        assert recovered == agreed.final_key

    def test_fresh_material_per_call(self, bob_identity) -> None:
        """Every call uses new ephemeral keys and capsules."""
        first = encapsulate(bob_identity.pq.public_key, bob_identity.classical.public_key)
        second = encapsulate(bob_identity.pq.public_key, bob_identity.classical.public_key)
        assert first.ephemeral_public_key != second.ephemeral_public_key
        assert first.capsule != second.capsule
        assert first.final_key != second.final_key

    def test_wrong_recipient(self, bob_identity, eve_identity) -> None:
        """A different identity derives a different key."""
        agreed = encapsulate(bob_identity.pq.public_key, bob_identity.classical.public_key)
        recovered = decapsulate(
            agreed.capsule,
            agreed.ephemeral_public_key,
            eve_identity.pq.private_key,
            eve_identity.classical.private_key,
        )
        assert recovered != agreed.final_key

    def test_tampered_capsule_changes_key(self, bob_identity) -> None:
        """A flipped capsule bit never reproduces the session key."""
        agreed = encapsulate(bob_identity.pq.public_key, bob_identity.classical.public_key)
        recovered = decapsulate(
            flip_bit(agreed.capsule, 0),
            agreed.ephemeral_public_key,
            bob_identity.pq.private_key,
            bob_identity.classical.private_key,
        )
        assert recovered != agreed.final_key

    def test_truncated_capsule(self, bob_identity) -> None:
        """A truncated capsule raises DecapsulationError."""
        agreed = encapsulate(bob_identity.pq.public_key, bob_identity.classical.public_key)
        with pytest.raises(DecapsulationError):
            decapsulate(
                agreed.capsule[:-1],
                agreed.ephemeral_public_key,
                bob_identity.pq.private_key,
                bob_identity.classical.private_key,
            )

    def test_missing_keys(self, bob_identity) -> None:
        """Absent key material is a MissingParameterError."""
        with pytest.raises(MissingParameterError):
            encapsulate(b"", bob_identity.classical.public_key)
        with pytest.raises(MissingParameterError):
            decapsulate(bytes(PQ_CAPSULE_SIZE), bytes(32), b"", b"")

    def test_repr_hides_session_key(self, bob_identity) -> None:
        """The session key is not shown in repr."""
        agreed = encapsulate(bob_identity.pq.public_key, bob_identity.classical.public_key)
        assert agreed.final_key.hex() not in repr(agreed)
