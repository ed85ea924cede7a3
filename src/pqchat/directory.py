"""
Interfaces to the remote profile and message stores.

pqchat only needs two things from the outside world: the published public
keys of each user, and an opaque per-conversation blob store for message
content. Both are abstract here; the in-memory versions back the tests.
"""

import base64
import binascii
from abc import ABC, abstractmethod
from typing import Any, Optional

from .keys import PublicKeyBundle
from .models import StoredMessage
from .types import InvalidPublicKeyError, PQ_PUBLIC_KEY_SIZE, PUBLIC_KEY_SIZE


def bundle_to_profile_fields(bundle: PublicKeyBundle) -> dict:
    """Encode public keys as the profile store's base64 fields."""
    return {
        "classicalPublicKey": base64.b64encode(bundle.classical_public_key).decode("ascii"),
        "pqPublicKey": base64.b64encode(bundle.pq_public_key).decode("ascii"),
    }


def bundle_from_profile_fields(fields: dict[str, Any]) -> Optional[PublicKeyBundle]:
    """
    Decode public keys from profile fields.

    Returns:
        PublicKeyBundle, or None if either field is absent or empty

    Raises:
        InvalidPublicKeyError: If a field is not base64 or has the wrong size
    """
    classical = fields.get("classicalPublicKey")
    pq = fields.get("pqPublicKey")
    if not classical or not pq:
        return None
    try:
        classical_bytes = base64.b64decode(classical, validate=True)
        pq_bytes = base64.b64decode(pq, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise InvalidPublicKeyError("Profile public keys are not valid base64") from e

    if len(classical_bytes) != PUBLIC_KEY_SIZE:
        raise InvalidPublicKeyError(f"Classical public key must be {PUBLIC_KEY_SIZE} bytes")
    if len(pq_bytes) != PQ_PUBLIC_KEY_SIZE:
        raise InvalidPublicKeyError(f"PQ public key must be {PQ_PUBLIC_KEY_SIZE} bytes")
    return PublicKeyBundle(classical_public_key=classical_bytes, pq_public_key=pq_bytes)


class ProfileStore(ABC):
    """Abstract base class for the remote per-user profile store."""

    @abstractmethod
    async def get_profile_fields(self, user_id: str) -> dict[str, Any]:
        """Return the profile's key fields (empty if the user has none)."""
        ...

    @abstractmethod
    async def update_profile_fields(self, user_id: str, fields: dict[str, Any]) -> None:
        """Overwrite fields on the owning user's profile."""
        ...

    async def get_public_keys(self, user_id: str) -> Optional[PublicKeyBundle]:
        """Fetch a user's published public keys, or None if unpublished."""
        return bundle_from_profile_fields(await self.get_profile_fields(user_id))

    async def publish_public_keys(self, user_id: str, bundle: PublicKeyBundle) -> None:
        """Publish (or overwrite) a user's public keys."""
        await self.update_profile_fields(user_id, bundle_to_profile_fields(bundle))


class MessageStore(ABC):
    """Abstract base class for the remote per-conversation message store."""

    @abstractmethod
    async def append(self, conversation_id: str, sender_id: str, content: str) -> StoredMessage:
        """Persist opaque content and return the stored row."""
        ...

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        """Return a conversation's messages, oldest first."""
        ...


class InMemoryProfileStore(ProfileStore):
    """In-memory implementation of ProfileStore."""

    def __init__(self) -> None:
        self._profiles: dict[str, dict[str, Any]] = {}

    async def get_profile_fields(self, user_id: str) -> dict[str, Any]:
        return dict(self._profiles.get(user_id, {}))

    async def update_profile_fields(self, user_id: str, fields: dict[str, Any]) -> None:
        self._profiles.setdefault(user_id, {}).update(fields)


class InMemoryMessageStore(MessageStore):
    """In-memory implementation of MessageStore."""

    def __init__(self) -> None:
        self._messages: dict[str, list[StoredMessage]] = {}

    async def append(self, conversation_id: str, sender_id: str, content: str) -> StoredMessage:
        message = StoredMessage.create(conversation_id, sender_id, content)
        self._messages.setdefault(conversation_id, []).append(message)
        return message

    async def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        messages = list(self._messages.get(conversation_id, []))
        messages.sort(key=lambda m: m.created_at)
        return messages
