"""Private key storage interface and in-memory implementation."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..types import MissingParameterError


class KeySlot(Enum):
    """Kind of private key held in a store entry."""
    CLASSICAL_IDENTITY = "identity_private_key"
    PQ_IDENTITY = "pqc_identity_private_key"
    CONVERSATION_EPHEMERAL = "ephemeral_key"


@dataclass(frozen=True)
class KeyRef:
    """Typed address of one private key: slot plus owner (user or conversation)."""
    slot: KeySlot
    owner_id: str

    def __post_init__(self) -> None:
        if not self.owner_id:
            raise MissingParameterError("owner_id must be non-empty")

    @property
    def name(self) -> str:
        """Stable flat name, used by stores that need a string key."""
        return f"{self.slot.value}.{self.owner_id}"


class KeyStore(ABC):
    """Interface for persisting private keys on this device."""

    @abstractmethod
    async def get(self, ref: KeyRef) -> Optional[bytes]:
        """Return the key at ``ref``, or None if absent."""
        ...

    @abstractmethod
    async def set(self, ref: KeyRef, private_key: bytes) -> None:
        """Store a key, overwriting any existing entry."""
        ...

    @abstractmethod
    async def delete(self, ref: KeyRef) -> None:
        """Remove a key. Removing an absent key is a no-op."""
        ...

    @abstractmethod
    async def list_owners(self, slot: KeySlot) -> list[str]:
        """List owner ids that have a key in ``slot``."""
        ...


class InMemoryKeyStore(KeyStore):
    """
    In-memory implementation of KeyStore (for testing).

    WARNING: This is NOT secure for production use. Keys are stored in memory
    without encryption and are lost when the process exits.
    """

    def __init__(self) -> None:
        self._keys: dict[KeyRef, bytes] = {}

    async def get(self, ref: KeyRef) -> Optional[bytes]:
        key = self._keys.get(ref)
        return bytes(key) if key is not None else None

    async def set(self, ref: KeyRef, private_key: bytes) -> None:
        self._keys[ref] = bytes(private_key)

    async def delete(self, ref: KeyRef) -> None:
        self._keys.pop(ref, None)

    async def list_owners(self, slot: KeySlot) -> list[str]:
        return [ref.owner_id for ref in self._keys if ref.slot is slot]
