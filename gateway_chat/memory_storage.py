"""
In-memory identity storage. Blobs live for the lifetime of the process.
"""

from typing import Dict, Optional

from .config import IDENTITY_KEY_ID
from .storage_interface import IdentityStorageInterface


class MemoryIdentityStorage(IdentityStorageInterface):
    """Dictionary-backed storage; always available"""

    def __init__(self) -> None:
        self._blobs: Dict[str, str] = {}

    def load_blob(self, key_id: str = IDENTITY_KEY_ID) -> Optional[str]:
        return self._blobs.get(key_id)

    def store_blob(self, blob: str, key_id: str = IDENTITY_KEY_ID) -> bool:
        self.validate_key_id(key_id)
        self._blobs[key_id] = blob
        return True

    def delete_blob(self, key_id: str = IDENTITY_KEY_ID) -> bool:
        self._blobs.pop(key_id, None)
        return True

    def is_available(self) -> bool:
        return True
