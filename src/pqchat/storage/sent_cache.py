"""Transient plaintext cache for messages this process just sent."""

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Optional


class SentMessageCache(ABC):
    """Interface for caching the plaintext of one's own sent messages."""

    @abstractmethod
    async def store(self, conversation_id: str, message_id: str, plaintext: str) -> None:
        """Remember the plaintext of a sent message."""
        ...

    @abstractmethod
    async def retrieve(self, conversation_id: str, message_id: str) -> Optional[str]:
        """Return cached plaintext, or None on a miss."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Clear all cached data."""
        ...


class InMemorySentMessageCache(SentMessageCache):
    """
    In-memory implementation of SentMessageCache.

    Each conversation keeps at most ``max_entries`` messages; the oldest
    entry is evicted first.
    """

    def __init__(self, max_entries: int = 256) -> None:
        self._max_entries = max_entries
        self._entries: dict[str, OrderedDict[str, str]] = {}

    async def store(self, conversation_id: str, message_id: str, plaintext: str) -> None:
        if self._max_entries <= 0:
            return
        entries = self._entries.setdefault(conversation_id, OrderedDict())
        entries[message_id] = plaintext
        entries.move_to_end(message_id)
        while len(entries) > self._max_entries:
            entries.popitem(last=False)

    async def retrieve(self, conversation_id: str, message_id: str) -> Optional[str]:
        entries = self._entries.get(conversation_id)
        if entries is None:
            return None
        return entries.get(message_id)

    async def clear(self) -> None:
        self._entries.clear()
