"""
Per-user private key management.

The KeyManager is the only component that reads or writes private keys. It
scopes identity keys by user id and legacy forward-secrecy keys by
conversation id, on top of any KeyStore implementation.
"""

import asyncio
import logging
from concurrent.futures import Executor
from typing import Optional, Tuple

from .keys import (
    ClassicalKeyPair,
    IdentityKeyPair,
    classical_keypair_from_private,
    generate_classical_keypair,
    generate_identity_keypair,
)
from .storage.key_store import KeyRef, KeySlot, KeyStore
from .types import (
    KeyNotFoundError,
    MissingParameterError,
    PQ_PRIVATE_KEY_SIZE,
    PRIVATE_KEY_SIZE,
    StorageError,
)

logger = logging.getLogger(__name__)


class KeyManager:
    """
    Generates, stores, retrieves and erases private keys.

    Example usage:
        ```python
        manager = KeyManager(InMemoryKeyStore())
        identity = await manager.generate_identity_keypair()
        await manager.store_identity_private_keys(
            "user-1", identity.classical.private_key, identity.pq.private_key
        )
        assert await manager.has_keys("user-1")
        ```
    """

    def __init__(self, store: KeyStore, executor: Optional[Executor] = None) -> None:
        """
        Args:
            store: Persistent key-value surface for private keys.
            executor: Executor for ML-KEM key generation (default: the loop's).
        """
        self.store = store
        self._executor = executor

    async def generate_identity_keypair(self) -> IdentityKeyPair:
        """Generate a fresh identity off the event loop thread."""
        loop = asyncio.get_running_loop()
        identity = await loop.run_in_executor(self._executor, generate_identity_keypair)
        logger.info("Generated identity key pair")
        return identity

    async def store_identity_private_keys(
        self,
        user_id: str,
        classical_private: bytes,
        pq_private: bytes,
    ) -> None:
        """
        Persist both private halves for a user, overwriting any existing entry.

        Raises:
            MissingParameterError: If a key is absent or the wrong size
            StorageError: If the store rejects the write
        """
        if not classical_private or len(classical_private) != PRIVATE_KEY_SIZE:
            raise MissingParameterError(f"Classical private key must be {PRIVATE_KEY_SIZE} bytes")
        if not pq_private or len(pq_private) != PQ_PRIVATE_KEY_SIZE:
            raise MissingParameterError(f"PQ private key must be {PQ_PRIVATE_KEY_SIZE} bytes")

        classical_ref = KeyRef(KeySlot.CLASSICAL_IDENTITY, user_id)
        previous = await self.store.get(classical_ref)
        await self._write(classical_ref, classical_private)
        try:
            await self._write(KeyRef(KeySlot.PQ_IDENTITY, user_id), pq_private)
        except StorageError:
            # Never leave a new classical half beside an old PQ half
            logger.error("PQ key write failed for user %s; restoring previous keys", user_id)
            if previous is None:
                await self.store.delete(classical_ref)
            else:
                await self._write(classical_ref, previous)
            raise
        logger.info("Stored identity private keys for user %s", user_id)

    async def get_classical_private_key(self, user_id: str) -> Optional[bytes]:
        return await self.store.get(KeyRef(KeySlot.CLASSICAL_IDENTITY, user_id))

    async def get_pq_private_key(self, user_id: str) -> Optional[bytes]:
        return await self.store.get(KeyRef(KeySlot.PQ_IDENTITY, user_id))

    async def require_identity_private_keys(self, user_id: str) -> Tuple[bytes, bytes]:
        """
        Return (classical_private, pq_private) for a user.

        Raises:
            KeyNotFoundError: If either half is missing
        """
        classical = await self.get_classical_private_key(user_id)
        pq = await self.get_pq_private_key(user_id)
        if classical is None or pq is None:
            raise KeyNotFoundError(user_id)
        return classical, pq

    async def has_keys(self, user_id: str) -> bool:
        """True iff both private halves are present."""
        classical = await self.get_classical_private_key(user_id)
        pq = await self.get_pq_private_key(user_id)
        return classical is not None and pq is not None

    async def clear_keys(self, user_id: str) -> None:
        """Remove both private halves. Idempotent."""
        await self.store.delete(KeyRef(KeySlot.CLASSICAL_IDENTITY, user_id))
        await self.store.delete(KeyRef(KeySlot.PQ_IDENTITY, user_id))
        logger.info("Cleared identity private keys for user %s", user_id)

    async def list_users_with_stored_keys(self) -> set[str]:
        """Users with both identity halves stored on this device."""
        classical = set(await self.store.list_owners(KeySlot.CLASSICAL_IDENTITY))
        pq = set(await self.store.list_owners(KeySlot.PQ_IDENTITY))
        return classical & pq

    async def derive_or_create_ephemeral_keypair(self, conversation_id: str) -> ClassicalKeyPair:
        """
        Return the stable per-conversation X25519 pair, creating it on first use.

        The public half is re-derived from the stored private half on every
        later call.
        """
        ref = KeyRef(KeySlot.CONVERSATION_EPHEMERAL, conversation_id)
        existing = await self.store.get(ref)
        if existing is not None:
            return classical_keypair_from_private(existing)

        pair = generate_classical_keypair()
        await self._write(ref, pair.private_key)
        logger.debug("Created ephemeral key pair for conversation %s", conversation_id)
        return pair

    async def clear_conversation_keys(self) -> None:
        """Remove every per-conversation ephemeral key."""
        for conversation_id in await self.store.list_owners(KeySlot.CONVERSATION_EPHEMERAL):
            await self.store.delete(KeyRef(KeySlot.CONVERSATION_EPHEMERAL, conversation_id))

    async def _write(self, ref: KeyRef, private_key: bytes) -> None:
        try:
            await self.store.set(ref, private_key)
        except StorageError:
            raise
        except OSError as e:
            raise StorageError(f"Key store rejected write for {ref.slot.value}: {e}") from e
