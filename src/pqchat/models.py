"""Models for pqchat messages and conversations."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import uuid


class MessageDirection(Enum):
    """Direction of a message relative to the current user."""
    SENT = "sent"
    RECEIVED = "received"


class DecryptionStatus(Enum):
    """Outcome of decrypting one stored message."""
    OK = "ok"
    LEGACY = "legacy"  # opened with the unauthenticated legacy format
    PLAINTEXT = "plaintext"  # stored unencrypted by an old client
    MISSING_KEYS = "missing_keys"
    FAILED = "failed"

    @property
    def is_readable(self) -> bool:
        return self in (DecryptionStatus.OK, DecryptionStatus.LEGACY, DecryptionStatus.PLAINTEXT)


# Placeholder texts shown instead of undecryptable content
PLACEHOLDER_MISSING_KEYS = "[Missing keys - cannot decrypt]"
PLACEHOLDER_FAILED = "[Cannot decrypt]"
PLACEHOLDER_OLD_KEYS = "[Old message - encrypted with previous keys]"


@dataclass
class StoredMessage:
    """A message row as held by the remote message store."""
    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(cls, conversation_id: str, sender_id: str, content: str) -> "StoredMessage":
        """Creates a new stored message with a random id."""
        return cls(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
        )


@dataclass
class Message:
    """A decrypted (or placeholder) message ready for display."""
    id: str
    conversation_id: str
    sender_id: str
    text: str
    timestamp: datetime
    direction: MessageDirection
    status: DecryptionStatus = DecryptionStatus.OK
    error: Optional[str] = None

    @property
    def is_readable(self) -> bool:
        """Whether ``text`` is the real message rather than a placeholder."""
        return self.status.is_readable
