"""
Hybrid Identity Storage Manager

Combines file storage and in-memory storage with automatic fallback.
The file is the durable copy; memory keeps the identity usable for the
rest of the process when the file cannot be written.
"""

from typing import Optional

from .config import IDENTITY_DIR, IDENTITY_KEY_ID
from .storage_interface import IdentityStorageInterface
from .file_storage import FileIdentityStorage
from .memory_storage import MemoryIdentityStorage
from .logger import Logger


class HybridIdentityStorage(IdentityStorageInterface):
    """
    Hybrid identity storage with automatic fallback.

    Strategy:
    1. Primary: JSON file (durable)
    2. Fallback: process memory (used when the file backend fails)

    Storage: Always keeps a memory copy, writes the file when possible
    Retrieval: Tries the file first, falls back to memory
    """

    def __init__(self, directory: str = IDENTITY_DIR, primary: Optional[IdentityStorageInterface] = None):
        """Initialize both storage backends."""
        self.primary = primary if primary is not None else FileIdentityStorage(directory)
        self.memory = MemoryIdentityStorage()

        self.primary_available = self.primary.is_available()
        if not self.primary_available:
            Logger.warning("Durable identity storage not available - identity will not survive restart")

    def store_blob(self, blob: str, key_id: str = IDENTITY_KEY_ID) -> bool:
        """
        Store in memory and, if available, in the primary backend.

        Returns True only if the durable copy was written.
        """
        self.memory.store_blob(blob, key_id)

        if not self.primary_available:
            return False

        if self.primary.store_blob(blob, key_id):
            return True

        Logger.warning("Failed to persist device identity - keeping it in memory only")
        return False

    def load_blob(self, key_id: str = IDENTITY_KEY_ID) -> Optional[str]:
        """Retrieve from the primary backend, falling back to memory."""
        if self.primary_available:
            blob = self.primary.load_blob(key_id)
            if blob is not None:
                return blob

        return self.memory.load_blob(key_id)

    def delete_blob(self, key_id: str = IDENTITY_KEY_ID) -> bool:
        """Delete from all backends."""
        self.memory.delete_blob(key_id)
        if self.primary_available:
            return self.primary.delete_blob(key_id)
        return True

    def is_available(self) -> bool:
        """Memory is always there"""
        return True
