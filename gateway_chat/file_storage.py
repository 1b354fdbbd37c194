"""
File Identity Storage Implementation

Stores identity blobs as files in a private directory, one file per key id
(`<directory>/<key_id>.json`). Files are written atomically and readable
only by the owner.
"""

import os
import tempfile
from typing import Optional

from .config import IDENTITY_DIR, IDENTITY_KEY_ID
from .storage_interface import IdentityStorageInterface
from .logger import Logger


class FileIdentityStorage(IdentityStorageInterface):
    """
    File-system implementation of identity storage.
    """

    def __init__(self, directory: str = IDENTITY_DIR):
        """
        Initialize file storage.

        Args:
            directory: Directory holding the blobs (created on first store)
        """
        self.directory = os.path.expanduser(directory)

    def path_for(self, key_id: str) -> str:
        self.validate_key_id(key_id)
        return os.path.join(self.directory, f"{key_id}.json")

    def load_blob(self, key_id: str = IDENTITY_KEY_ID) -> Optional[str]:
        path = self.path_for(key_id)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            Logger.error(f"Error reading {path}: {e}")
            return None

    def store_blob(self, blob: str, key_id: str = IDENTITY_KEY_ID) -> bool:
        """
        Write the blob via a temp file + rename so a crash never leaves a
        half-written identity behind.
        """
        path = self.path_for(key_id)
        try:
            os.makedirs(self.directory, mode=0o700, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key_id}.", suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(blob)
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
            return True
        except OSError as e:
            Logger.error(f"Error writing {path}: {e}")
            return False

    def delete_blob(self, key_id: str = IDENTITY_KEY_ID) -> bool:
        path = self.path_for(key_id)
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            Logger.error(f"Error deleting {path}: {e}")
            return False

    def is_available(self) -> bool:
        """
        Usable if the directory exists and is writable, or can be created.
        """
        if os.path.isdir(self.directory):
            return os.access(self.directory, os.W_OK)
        parent = os.path.dirname(os.path.abspath(self.directory))
        while parent and not os.path.exists(parent):
            next_parent = os.path.dirname(parent)
            if next_parent == parent:
                break
            parent = next_parent
        return os.path.isdir(parent) and os.access(parent, os.W_OK)
