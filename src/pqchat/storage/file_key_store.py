"""
File-based private key storage with password protection.

Stores each private key encrypted with AES-256-GCM, using a password
derived key via PBKDF2. Keys are stored in `~/.pqchat/keys/` unless another
directory is given.

## Storage Format

Each key file contains:
- Salt: 32 bytes (random, for PBKDF2)
- Nonce: 12 bytes (random, for AES-GCM)
- Ciphertext: variable (32-byte X25519 or 2400-byte ML-KEM private key)
- Tag: 16 bytes (authentication tag)

File names are `<slot>.<base64url(owner id)>.key`, so any owner id is a
valid file name and slots never collide.

## Security

- Uses PBKDF2 with 100,000 iterations for key derivation
- Uses AES-256-GCM for authenticated encryption
- Keys are stored with 600 permissions (owner read/write only)
- Salt is unique per key file
"""

import base64
import binascii
import logging
import os
from pathlib import Path
from typing import Optional, List

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..types import StorageError
from .key_store import KeyRef, KeySlot, KeyStore

logger = logging.getLogger(__name__)


class PasswordRequiredError(StorageError):
    """Raised when password is required but not set."""

    def __init__(self) -> None:
        super().__init__("Password is required for file key storage")


class DecryptionFailedError(StorageError):
    """Raised when decryption fails (wrong password)."""

    def __init__(self) -> None:
        super().__init__("Decryption failed - incorrect password or corrupted data")


class InvalidKeyDataError(StorageError):
    """Raised when key data is invalid."""

    def __init__(self) -> None:
        super().__init__("Invalid key data format")


class FileKeyStore(KeyStore):
    """
    File-based private key storage with password protection.

    Example usage:
        ```python
        store = FileKeyStore(password="user-password")
        manager = KeyManager(store)

        await manager.store_identity_private_keys(user_id, classical, pq)
        ```
    """

    # PBKDF2 iteration count (OWASP recommendation for SHA256)
    PBKDF2_ITERATIONS = 100_000

    # Salt size in bytes
    SALT_SIZE = 32

    # AES-GCM nonce size in bytes
    NONCE_SIZE = 12

    # AES-GCM tag size in bytes
    TAG_SIZE = 16

    # Default directory for key storage, relative to the home directory
    DIRECTORY_NAME = ".pqchat/keys"

    # Minimum file size (salt + nonce + tag)
    MIN_FILE_SIZE = 32 + 12 + 16  # 60 bytes

    FILE_SUFFIX = ".key"

    def __init__(
        self,
        password: Optional[str] = None,
        directory: Optional[Path] = None,
        iterations: Optional[int] = None,
    ) -> None:
        """
        Create a new file key store.

        Args:
            password: Optional password for encryption. If not provided,
                      must be set before use.
            directory: Storage directory (default: ~/.pqchat/keys).
            iterations: PBKDF2 iteration count override.
        """
        self._password = password
        self._directory = Path(directory) if directory is not None else None
        self._iterations = iterations or self.PBKDF2_ITERATIONS
        self._cached_derived_key: Optional[bytes] = None
        self._cached_salt: Optional[bytes] = None

    def set_password(self, password: str) -> None:
        """Set the password for encryption/decryption."""
        self._password = password
        self._cached_derived_key = None
        self._cached_salt = None

    def clear_password(self) -> None:
        """Clear the password and cached keys from memory."""
        self._password = None
        self._cached_derived_key = None
        self._cached_salt = None

    async def set(self, ref: KeyRef, private_key: bytes) -> None:
        """
        Store a private key, overwriting any existing file.

        Raises:
            PasswordRequiredError: If no password is set.
            StorageError: If the file cannot be written.
        """
        if not self._password:
            raise PasswordRequiredError()

        salt = os.urandom(self.SALT_SIZE)
        nonce = os.urandom(self.NONCE_SIZE)
        derived_key = self._derive_key(self._password, salt)

        aesgcm = AESGCM(derived_key)
        ciphertext_and_tag = aesgcm.encrypt(nonce, private_key, ref.name.encode("utf-8"))

        try:
            directory = self._ensure_directory()
            file_path = self._key_file_path(ref, directory)
            file_path.write_bytes(salt + nonce + ciphertext_and_tag)
        except OSError as e:
            raise StorageError(f"Failed to write key file for {ref.slot.value}: {e}") from e

        self._set_restrictive_permissions(file_path)
        logger.debug("Stored %s key for %s", ref.slot.value, ref.owner_id)

    async def get(self, ref: KeyRef) -> Optional[bytes]:
        """
        Retrieve a private key.

        Returns:
            The key bytes, or None if no file exists.

        Raises:
            PasswordRequiredError: If no password is set.
            DecryptionFailedError: If decryption fails (wrong password).
            InvalidKeyDataError: If the key data is corrupted.
        """
        if not self._password:
            raise PasswordRequiredError()

        file_path = self._key_file_path(ref, self._get_directory())
        if not file_path.exists():
            return None

        try:
            file_data = file_path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read key file for {ref.slot.value}: {e}") from e

        if len(file_data) < self.MIN_FILE_SIZE:
            raise InvalidKeyDataError()

        salt = file_data[: self.SALT_SIZE]
        nonce = file_data[self.SALT_SIZE : self.SALT_SIZE + self.NONCE_SIZE]
        ciphertext_and_tag = file_data[self.SALT_SIZE + self.NONCE_SIZE :]

        derived_key = self._derive_key(self._password, salt)

        try:
            aesgcm = AESGCM(derived_key)
            return aesgcm.decrypt(nonce, ciphertext_and_tag, ref.name.encode("utf-8"))
        except InvalidTag as e:
            raise DecryptionFailedError() from e

    async def delete(self, ref: KeyRef) -> None:
        """Delete a key file if it exists."""
        file_path = self._key_file_path(ref, self._get_directory())
        try:
            file_path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete key file for {ref.slot.value}: {e}") from e

    async def list_owners(self, slot: KeySlot) -> List[str]:
        """List owner ids with a key file in ``slot``."""
        directory = self._get_directory()
        if not directory.exists():
            return []

        prefix = f"{slot.value}."
        owners = []
        for f in directory.iterdir():
            if f.suffix != self.FILE_SUFFIX or not f.stem.startswith(prefix):
                continue
            owner = self._decode_owner(f.stem[len(prefix):])
            if owner is not None:
                owners.append(owner)
        return owners

    def _get_directory(self) -> Path:
        """Get the key storage directory path."""
        if self._directory is not None:
            return self._directory
        return Path.home() / self.DIRECTORY_NAME

    def _ensure_directory(self) -> Path:
        """Ensure the key storage directory exists."""
        directory = self._get_directory()
        directory.mkdir(parents=True, exist_ok=True)
        try:
            directory.chmod(0o700)
        except OSError:
            logger.debug("Could not restrict permissions on %s", directory)
        return directory

    def _key_file_path(self, ref: KeyRef, directory: Path) -> Path:
        """Return the file path for a key."""
        owner = base64.urlsafe_b64encode(ref.owner_id.encode("utf-8")).decode("ascii").rstrip("=")
        return directory / f"{ref.slot.value}.{owner}{self.FILE_SUFFIX}"

    @staticmethod
    def _decode_owner(encoded: str) -> Optional[str]:
        padded = encoded + "=" * (-len(encoded) % 4)
        try:
            return base64.urlsafe_b64decode(padded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None

    def _derive_key(self, password: str, salt: bytes) -> bytes:
        """Derive an encryption key from password using PBKDF2."""
        if self._cached_derived_key and self._cached_salt == salt:
            return self._cached_derived_key

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self._iterations,
        )
        derived_key = kdf.derive(password.encode("utf-8"))

        self._cached_derived_key = derived_key
        self._cached_salt = salt

        return derived_key

    def _set_restrictive_permissions(self, file_path: Path) -> None:
        """Set restrictive file permissions (600 on Unix)."""
        try:
            file_path.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", file_path)
