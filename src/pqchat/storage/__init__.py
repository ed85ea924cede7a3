"""pqchat storage module."""

from .key_store import KeyStore, InMemoryKeyStore, KeyRef, KeySlot
from .file_key_store import (
    FileKeyStore,
    PasswordRequiredError,
    DecryptionFailedError,
    InvalidKeyDataError,
)
from .public_key_cache import PublicKeyCache
from .sent_cache import SentMessageCache, InMemorySentMessageCache

__all__ = [
    "KeyStore",
    "InMemoryKeyStore",
    "KeyRef",
    "KeySlot",
    "FileKeyStore",
    "PasswordRequiredError",
    "DecryptionFailedError",
    "InvalidKeyDataError",
    "PublicKeyCache",
    "SentMessageCache",
    "InMemorySentMessageCache",
]
