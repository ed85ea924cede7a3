"""
Dual-envelope send and read.

Every message is encrypted twice: once to the recipient's keys and once to
the sender's own keys, with independent ephemeral material. The sender can
therefore re-read their sent history from the store without keeping any
plaintext around.
"""

import asyncio
import functools
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional, Union

from .config import HybridChatConfig
from .crypto import decrypt_envelope, encrypt_message
from .envelope import DualEnvelope, HybridEnvelope
from .key_manager import KeyManager
from .keys import PublicKeyBundle
from .storage.sent_cache import InMemorySentMessageCache, SentMessageCache
from .types import (
    DecryptedContent,
    InvalidEnvelopeError,
    MissingParameterError,
    Role,
)

logger = logging.getLogger(__name__)


class DualEnvelopeProtocol:
    """
    Packages plaintext into dual envelopes and opens either half.

    ML-KEM encapsulation and decapsulation run on an executor so that an
    event loop serving a UI stays responsive. Calls are independent of each
    other and may be awaited concurrently.
    """

    def __init__(
        self,
        key_manager: KeyManager,
        config: Optional[HybridChatConfig] = None,
        executor: Optional[Executor] = None,
        sent_cache: Optional[SentMessageCache] = None,
    ) -> None:
        """
        Args:
            key_manager: Source of our private keys.
            config: Format and cache settings (default: HybridChatConfig()).
            executor: Executor for CPU-bound work; one is created from
                ``config.max_workers`` when omitted and a size is set.
            sent_cache: Cache for our own freshly sent plaintexts.
        """
        self.key_manager = key_manager
        self.config = config or HybridChatConfig()
        self._owns_executor = executor is None and self.config.max_workers is not None
        if self._owns_executor:
            executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix="pqchat",
            )
        self._executor = executor
        self.sent_cache = sent_cache or InMemorySentMessageCache(self.config.sent_cache_size)

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))

    async def package_for_send(
        self,
        plaintext: str,
        own_public_keys: PublicKeyBundle,
        recipient_public_keys: PublicKeyBundle,
    ) -> DualEnvelope:
        """
        Encrypt one message to the recipient and to ourselves.

        Either both envelopes are produced or the call raises; a partial
        dual envelope is never returned.

        Args:
            plaintext: Message text
            own_public_keys: Our published public keys
            recipient_public_keys: Recipient's published public keys

        Returns:
            DualEnvelope with independent ``for_recipient`` and ``for_sender``
        """
        if plaintext is None:
            raise MissingParameterError("Plaintext is required")
        if own_public_keys is None or recipient_public_keys is None:
            raise MissingParameterError("Own and recipient public keys are required")

        version = self.config.format_version
        for_recipient, for_sender = await asyncio.gather(
            self._run(encrypt_message, plaintext, recipient_public_keys, version),
            self._run(encrypt_message, plaintext, own_public_keys, version),
        )
        return DualEnvelope(for_recipient=for_recipient, for_sender=for_sender)

    async def unpackage_for_read(
        self,
        envelope: Union[DualEnvelope, HybridEnvelope],
        role: Role,
        own_user_id: str,
    ) -> DecryptedContent:
        """
        Open the half of an envelope addressed to us.

        A bare HybridEnvelope (pre-dual data) is treated as addressed to the
        recipient.

        Args:
            envelope: Stored envelope
            role: Whether we sent (SENDER) or received (RECIPIENT) the message
            own_user_id: Whose private keys to use

        Raises:
            KeyNotFoundError: If we hold no private keys for ``own_user_id``
            InvalidEnvelopeError: If the selected half is absent
            DecapsulationError: If the capsule is malformed
            AuthenticationFailureError: If the ciphertext does not open
        """
        classical_private, pq_private = await self.key_manager.require_identity_private_keys(
            own_user_id
        )
        half = select_envelope(envelope, role)
        return await self._run(decrypt_envelope, half, classical_private, pq_private)

    async def remember_sent(self, conversation_id: str, message_id: str, plaintext: str) -> None:
        """Cache the plaintext of a message we just sent."""
        await self.sent_cache.store(conversation_id, message_id, plaintext)

    async def read_own_message(
        self,
        conversation_id: str,
        message_id: str,
        envelope: Union[DualEnvelope, HybridEnvelope],
        own_user_id: str,
    ) -> DecryptedContent:
        """
        Read one of our own messages, from the cache when possible.

        Raises:
            KeyNotFoundError: If we hold no private keys, even on a cache hit
        """
        await self.key_manager.require_identity_private_keys(own_user_id)
        cached = await self.sent_cache.retrieve(conversation_id, message_id)
        if cached is not None:
            logger.debug("Sent-cache hit for message %s", message_id)
            return DecryptedContent(text=cached)

        content = await self.unpackage_for_read(envelope, Role.SENDER, own_user_id)
        await self.sent_cache.store(conversation_id, message_id, content.text)
        return content

    def close(self) -> None:
        """Shut down an executor this protocol created."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


def select_envelope(
    envelope: Union[DualEnvelope, HybridEnvelope],
    role: Role,
) -> HybridEnvelope:
    """Pick the half of a stored envelope a reader in ``role`` can open."""
    if isinstance(envelope, HybridEnvelope):
        if role is Role.SENDER:
            raise InvalidEnvelopeError("Single-envelope message has no sender copy")
        return envelope

    if role is Role.SENDER:
        if envelope.for_sender is None:
            raise InvalidEnvelopeError("Dual envelope has no sender copy")
        return envelope.for_sender
    return envelope.for_recipient
