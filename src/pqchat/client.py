"""
pqchat client for end-to-end encrypted conversations.

The HybridChatClient ties key management, the dual-envelope protocol, and
the remote profile and message stores together for one signed-in user.
"""

import asyncio
import logging
from typing import List, Optional

from .config import HybridChatConfig
from .directory import MessageStore, ProfileStore
from .envelope import ContentKind, encode_dual_envelope, parse_stored_content
from .key_manager import KeyManager
from .keys import PublicKeyBundle
from .models import (
    DecryptionStatus,
    Message,
    MessageDirection,
    PLACEHOLDER_FAILED,
    PLACEHOLDER_MISSING_KEYS,
    PLACEHOLDER_OLD_KEYS,
    StoredMessage,
)
from .protocol import DualEnvelopeProtocol
from .provisioning import KeyProvisioner, ProvisioningResult
from .storage import PublicKeyCache
from .types import (
    AuthenticationFailureError,
    DecapsulationError,
    HybridChatError,
    KeyNotFoundError,
    MissingParameterError,
    PublicKeyNotFoundError,
    Role,
)

logger = logging.getLogger(__name__)


class HybridChatClient:
    """
    High-level client for hybrid-encrypted messaging.

    The HybridChatClient provides methods for:
    - Sending encrypted messages
    - Loading and decrypting a conversation's history
    - Looking up peers' published public keys

    Example usage:
        ```python
        client = HybridChatClient(
            user_id="alice",
            key_manager=KeyManager(FileKeyStore(password=...)),
            profiles=my_profile_store,
            messages=my_message_store,
        )

        await client.send_message("conv-1", "bob", "Hello, Bob!")

        for msg in await client.load_conversation("conv-1"):
            print(f"{msg.sender_id}: {msg.text}")
        ```
    """

    def __init__(
        self,
        user_id: str,
        key_manager: KeyManager,
        profiles: ProfileStore,
        messages: MessageStore,
        config: Optional[HybridChatConfig] = None,
        protocol: Optional[DualEnvelopeProtocol] = None,
        public_key_cache: Optional[PublicKeyCache] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            user_id: The signed-in user.
            key_manager: Holder of this device's private keys.
            profiles: Remote profile store with published public keys.
            messages: Remote message store.
            config: Client configuration (default: HybridChatConfig()).
            protocol: Dual-envelope protocol (default: built from config).
            public_key_cache: Cache for peers' public keys.
        """
        if not user_id:
            raise MissingParameterError("user_id is required")
        self.user_id = user_id
        self.config = config or HybridChatConfig()
        self.key_manager = key_manager
        self.profiles = profiles
        self.messages = messages
        self.protocol = protocol or DualEnvelopeProtocol(key_manager, self.config)
        self.public_key_cache = public_key_cache or PublicKeyCache(self.config.public_key_ttl)
        self.provisioner = KeyProvisioner(key_manager, profiles, self.protocol.sent_cache)

    # MARK: - Keys

    async def ensure_keys(self) -> ProvisioningResult:
        """Make sure this user has usable keys here and in the profile store."""
        result = await self.provisioner.ensure_keys(self.user_id)
        self.public_key_cache.invalidate(self.user_id)
        return result

    async def sign_out(self, keep_keys: bool = True) -> None:
        """
        Sign the user out of this device.

        With ``keep_keys=False`` the private keys and every cached plaintext
        are erased, so sent history reads as missing-keys afterwards.
        """
        await self.provisioner.sign_out(self.user_id, keep_keys=keep_keys)
        self.public_key_cache.clear()

    async def public_keys_for(self, user_id: str) -> PublicKeyBundle:
        """
        Get a user's published public keys, using the cache when fresh.

        Raises:
            PublicKeyNotFoundError: If the user has not published keys
        """
        cached = self.public_key_cache.retrieve(user_id)
        if cached is not None:
            return cached

        keys = await self.profiles.get_public_keys(user_id)
        if keys is None:
            raise PublicKeyNotFoundError(user_id)

        self.public_key_cache.store(user_id, keys)
        return keys

    def forget_public_keys(self, user_id: str) -> None:
        """Drop cached keys, e.g. after a profile-changed notification."""
        self.public_key_cache.invalidate(user_id)

    # MARK: - Sending Messages

    async def send_message(self, conversation_id: str, recipient_id: str, text: str) -> Message:
        """
        Encrypt and store a message.

        Args:
            conversation_id: Conversation to post in.
            recipient_id: The other participant.
            text: Message text.

        Returns:
            The sent Message (already decrypted for display).

        Raises:
            PublicKeyNotFoundError: If either party has no published keys.
        """
        if text is None:
            raise MissingParameterError("Message text is required")

        own_keys = await self.public_keys_for(self.user_id)
        recipient_keys = await self.public_keys_for(recipient_id)

        envelope = await self.protocol.package_for_send(text, own_keys, recipient_keys)
        stored = await self.messages.append(
            conversation_id, self.user_id, encode_dual_envelope(envelope)
        )
        await self.protocol.remember_sent(conversation_id, stored.id, text)
        logger.debug("Sent message %s in conversation %s", stored.id, conversation_id)

        return Message(
            id=stored.id,
            conversation_id=conversation_id,
            sender_id=self.user_id,
            text=text,
            timestamp=stored.created_at,
            direction=MessageDirection.SENT,
        )

    # MARK: - Reading Messages

    async def load_conversation(self, conversation_id: str) -> List[Message]:
        """
        Fetch and decrypt every message in a conversation.

        Messages are decrypted concurrently. A message that cannot be
        decrypted is returned with a placeholder text and a non-OK status;
        it never prevents the rest from loading.
        """
        stored = await self.messages.list_messages(conversation_id)
        return list(await asyncio.gather(*(self.decrypt_stored(m) for m in stored)))

    async def decrypt_stored(self, stored: StoredMessage) -> Message:
        """Decrypt one stored message, mapping failures to placeholders."""
        direction = (
            MessageDirection.SENT if stored.sender_id == self.user_id else MessageDirection.RECEIVED
        )
        message = Message(
            id=stored.id,
            conversation_id=stored.conversation_id,
            sender_id=stored.sender_id,
            text="",
            timestamp=stored.created_at,
            direction=direction,
        )

        try:
            content = parse_stored_content(stored.content)
            if content.kind is ContentKind.PLAINTEXT:
                message.text = content.text
                message.status = DecryptionStatus.PLAINTEXT
                return message

            if direction is MessageDirection.SENT:
                decrypted = await self.protocol.read_own_message(
                    stored.conversation_id, stored.id, content.envelope, self.user_id
                )
            else:
                decrypted = await self.protocol.unpackage_for_read(
                    content.envelope, Role.RECIPIENT, self.user_id
                )
        except KeyNotFoundError as e:
            logger.warning("No local keys to decrypt message %s", stored.id)
            return self._placeholder(message, DecryptionStatus.MISSING_KEYS, PLACEHOLDER_MISSING_KEYS, e)
        except (AuthenticationFailureError, DecapsulationError) as e:
            logger.warning("Message %s could not be decrypted: %s", stored.id, type(e).__name__)
            text = PLACEHOLDER_OLD_KEYS if direction is MessageDirection.SENT else PLACEHOLDER_FAILED
            return self._placeholder(message, DecryptionStatus.FAILED, text, e)
        except HybridChatError as e:
            logger.warning("Message %s is malformed: %s", stored.id, e)
            return self._placeholder(message, DecryptionStatus.FAILED, PLACEHOLDER_FAILED, e)

        message.text = decrypted.text
        message.status = DecryptionStatus.LEGACY if decrypted.is_legacy else DecryptionStatus.OK
        return message

    @staticmethod
    def _placeholder(
        message: Message,
        status: DecryptionStatus,
        text: str,
        error: Exception,
    ) -> Message:
        message.status = status
        message.text = text
        message.error = type(error).__name__
        return message

    def close(self) -> None:
        """Release the protocol's worker threads."""
        self.protocol.close()
