"""
Reconciling local private keys with published public keys at login.

A device may hold private keys that were never published, or find
published keys whose private halves live on another device (or were
erased). Both are recoverable; the second requires rotating to a new
identity, which orphans every message encrypted to the old one.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .directory import ProfileStore
from .key_manager import KeyManager
from .keys import PublicKeyBundle, classical_keypair_from_private, pq_public_from_private
from .storage.sent_cache import SentMessageCache

logger = logging.getLogger(__name__)

ROTATION_WARNING = (
    "New encryption keys generated. Old messages cannot be decrypted, "
    "but you can send new messages."
)


class KeyStatus(Enum):
    """What ensure_keys found and did."""
    ACTIVE = "active"  # local and published keys match
    CREATED = "created"  # first identity for this user
    REPUBLISHED = "republished"  # local keys existed, public keys re-uploaded
    ROTATED = "rotated"  # new identity replaced an unusable one


@dataclass(frozen=True)
class ProvisioningResult:
    """Outcome of ensure_keys."""
    status: KeyStatus
    public_keys: PublicKeyBundle
    warning: Optional[str] = None

    @property
    def history_lost(self) -> bool:
        """Whether messages encrypted to a previous identity are now unreadable."""
        return self.status is KeyStatus.ROTATED


class KeyProvisioner:
    """
    Makes sure a user has usable keys locally and remotely.

    Example usage:
        ```python
        provisioner = KeyProvisioner(key_manager, profile_store)
        result = await provisioner.ensure_keys(user_id)
        if result.warning:
            show_warning(result.warning)
        ```
    """

    def __init__(
        self,
        key_manager: KeyManager,
        profiles: ProfileStore,
        sent_cache: Optional[SentMessageCache] = None,
    ) -> None:
        """
        Args:
            key_manager: Holder of this device's private keys.
            profiles: Remote profile store with published public keys.
            sent_cache: Plaintext cache to empty whenever keys are removed.
        """
        self.key_manager = key_manager
        self.profiles = profiles
        self.sent_cache = sent_cache

    async def ensure_keys(self, user_id: str) -> ProvisioningResult:
        """
        Reconcile local and published keys for a user.

        Returns:
            ProvisioningResult; ``warning`` is set when history was orphaned
        """
        local = await self._local_public_keys(user_id)
        remote = await self.profiles.get_public_keys(user_id)

        if local is None and remote is None:
            public_keys = await self._create_identity(user_id)
            logger.info("Created first identity for user %s", user_id)
            return ProvisioningResult(status=KeyStatus.CREATED, public_keys=public_keys)

        if local is not None and remote is None:
            await self.profiles.publish_public_keys(user_id, local)
            logger.info("Republished public keys for user %s", user_id)
            return ProvisioningResult(status=KeyStatus.REPUBLISHED, public_keys=local)

        if local is None:
            logger.warning(
                "Published keys for user %s have no local private keys; rotating", user_id
            )
            return await self._rotate(user_id)

        if local != remote:
            logger.warning(
                "Published keys for user %s do not match local private keys; rotating", user_id
            )
            return await self._rotate(user_id)

        return ProvisioningResult(status=KeyStatus.ACTIVE, public_keys=local)

    async def rotate_keys(self, user_id: str) -> ProvisioningResult:
        """Unconditionally replace a user's identity."""
        return await self._rotate(user_id)

    async def remove_keys(self, user_id: str, include_conversation_keys: bool = False) -> None:
        """
        Erase a user's local private keys.

        New keys are generated at the next ensure_keys, and messages
        encrypted to the erased keys become unreadable. Cached plaintext of
        sent messages is dropped too.
        """
        await self.key_manager.clear_keys(user_id)
        if include_conversation_keys:
            await self.key_manager.clear_conversation_keys()
        if self.sent_cache is not None:
            await self.sent_cache.clear()

    async def sign_out(self, user_id: str, keep_keys: bool = True) -> None:
        """Sign out, optionally erasing this device's keys for the user."""
        if not keep_keys:
            await self.remove_keys(user_id, include_conversation_keys=True)
            logger.info("Signed out user %s and cleared keys", user_id)
        else:
            logger.info("Signed out user %s (keys kept)", user_id)

    async def _local_public_keys(self, user_id: str) -> Optional[PublicKeyBundle]:
        classical = await self.key_manager.get_classical_private_key(user_id)
        pq = await self.key_manager.get_pq_private_key(user_id)
        if classical is None or pq is None:
            return None
        return PublicKeyBundle(
            classical_public_key=classical_keypair_from_private(classical).public_key,
            pq_public_key=pq_public_from_private(pq),
        )

    async def _create_identity(self, user_id: str) -> PublicKeyBundle:
        identity = await self.key_manager.generate_identity_keypair()
        # Store before publishing so peers never see keys we cannot use
        await self.key_manager.store_identity_private_keys(
            user_id, identity.classical.private_key, identity.pq.private_key
        )
        await self.profiles.publish_public_keys(user_id, identity.public_keys)
        return identity.public_keys

    async def _rotate(self, user_id: str) -> ProvisioningResult:
        public_keys = await self._create_identity(user_id)
        if self.sent_cache is not None:
            await self.sent_cache.clear()
        return ProvisioningResult(
            status=KeyStatus.ROTATED,
            public_keys=public_keys,
            warning=ROTATION_WARNING,
        )
