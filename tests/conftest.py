"""Shared fixtures for pqchat tests."""

import pytest

from pqchat.keys import generate_identity_keypair


@pytest.fixture(scope="session")
def alice_identity():
    """Alice's identity key pair."""
    return generate_identity_keypair()


@pytest.fixture(scope="session")
def bob_identity():
    """Bob's identity key pair."""
    return generate_identity_keypair()


@pytest.fixture(scope="session")
def eve_identity():
    """An unrelated identity."""
    return generate_identity_keypair()


def flip_bit(data: bytes, index: int = -1, bit: int = 0) -> bytes:
    """Return a copy of data with one bit flipped."""
    buf = bytearray(data)
    buf[index] ^= 1 << bit
    return bytes(buf)
