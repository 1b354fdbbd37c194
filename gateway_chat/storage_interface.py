"""
Identity Storage Interface - Abstract base for device identity storage

This defines the interface for persisting the small JSON blob that holds
the device keypair between runs.

Implementations:
- FileIdentityStorage: JSON file in the user's home directory (durable)
- MemoryIdentityStorage: process memory (lost on exit)
- HybridIdentityStorage: file first, memory fallback
"""

from abc import ABC, abstractmethod
from typing import Optional

from .config import IDENTITY_KEY_ID


class IdentityStorageInterface(ABC):
    """
    Abstract interface for durable small-blob storage.

    Backends never raise on I/O failure: stores and deletes report success
    as a bool and loads return None when nothing usable is stored.
    """

    @abstractmethod
    def load_blob(self, key_id: str = IDENTITY_KEY_ID) -> Optional[str]:
        """
        Retrieve a stored blob.

        Args:
            key_id: Identifier for the blob

        Returns:
            Blob text or None if not found or unreadable
        """
        pass

    @abstractmethod
    def store_blob(self, blob: str, key_id: str = IDENTITY_KEY_ID) -> bool:
        """
        Store a blob, replacing any previous value.

        Args:
            blob: Text to store
            key_id: Identifier for the blob

        Returns:
            True if stored successfully, False otherwise
        """
        pass

    @abstractmethod
    def delete_blob(self, key_id: str = IDENTITY_KEY_ID) -> bool:
        """
        Delete a stored blob.

        Returns:
            True if deleted (or already absent), False on failure
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if this storage backend can be used.

        Returns:
            True if backend can be used, False otherwise
        """
        pass

    def validate_key_id(self, key_id: str) -> None:
        """
        Validate that a key id is usable as a storage name.

        Raises:
            ValueError: If key_id is empty or contains path separators
        """
        if not key_id or '/' in key_id or '\\' in key_id or key_id in ('.', '..'):
            raise ValueError(f"Invalid storage key id: {key_id!r}")
