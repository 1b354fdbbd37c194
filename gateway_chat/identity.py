"""
Device Identity for gateway authentication

The gateway only grants operator scopes to connections that prove control of
a registered Ed25519 device key. This module owns that key: it is generated
once per installation, persisted through an IdentityStorageInterface backend,
and never rotated automatically.

Stored blob (JSON):
    {"version": 1, "createdAtMs": ..., "deviceId": "<hex>",
     "publicKey": "<b64url raw 32 bytes>", "privateKey": "<b64url raw 32 bytes>"}

The deviceId is always re-derived from the public key on load and the stored
copy is repaired if it disagrees.
"""

import json
import threading
import time
from dataclasses import dataclass
from typing import Optional

from .config import IDENTITY_KEY_ID, IDENTITY_VERSION
from .crypto import (
    ED25519_KEY_SIZE, b64url_decode, b64url_encode, derive_device_id,
    generate_keypair, public_key_from_private,
)
from .storage_interface import IdentityStorageInterface
from .hybrid_storage import HybridIdentityStorage
from .memory_storage import MemoryIdentityStorage
from .logger import Logger


@dataclass(frozen=True)
class DeviceIdentity:
    """Device keypair; device_id is derived from public_key"""
    device_id: str
    public_key: bytes
    private_key: bytes

    @property
    def public_key_b64(self) -> str:
        return b64url_encode(self.public_key)

    def __repr__(self) -> str:
        return f"DeviceIdentity(device_id={self.device_id[:16]}...)"

    @classmethod
    def generate(cls) -> "DeviceIdentity":
        public_raw, private_raw = generate_keypair()
        return cls(derive_device_id(public_raw), public_raw, private_raw)


class IdentityStore:
    """
    Loads or creates the device identity.

    The first call to load_or_create() reads the storage backend; later
    calls return the cached identity.
    """

    def __init__(self, storage: Optional[IdentityStorageInterface] = None, key_id: str = IDENTITY_KEY_ID):
        """
        Args:
            storage: Blob storage backend (defaults to HybridIdentityStorage)
            key_id: Name of the blob inside the backend
        """
        self.storage = storage if storage is not None else HybridIdentityStorage()
        self.key_id = key_id
        self._identity: Optional[DeviceIdentity] = None
        self._lock = threading.Lock()

    def load_or_create(self) -> DeviceIdentity:
        """
        Return the persisted identity, creating and persisting one if it is
        absent or malformed. Never raises on storage failure: a fresh
        identity is then held in memory for the life of the process.
        """
        with self._lock:
            if self._identity is None:
                self._identity = self._load() or self._create()
            return self._identity

    def _load(self) -> Optional[DeviceIdentity]:
        try:
            blob = self.storage.load_blob(self.key_id)
        except Exception as e:
            Logger.warning(f"Identity storage unavailable: {e}")
            self.storage = MemoryIdentityStorage()
            return None

        if blob is None:
            return None

        record = self._parse(blob)
        if record is None:
            Logger.warning("Stored device identity is malformed - generating a new one")
            return None

        public_raw = b64url_decode(record["publicKey"])
        private_raw = b64url_decode(record["privateKey"])
        device_id = derive_device_id(public_raw)

        if device_id != record["deviceId"]:
            Logger.warning("Stored device id does not match public key - repairing")
            record["deviceId"] = device_id
            self._persist(record)

        return DeviceIdentity(device_id, public_raw, private_raw)

    @staticmethod
    def _parse(blob: str) -> Optional[dict]:
        """Validate a stored record; None if anything about it is off"""
        try:
            record = json.loads(blob)
        except ValueError:
            return None

        if not isinstance(record, dict) or record.get("version") != IDENTITY_VERSION:
            return None
        for field in ("deviceId", "publicKey", "privateKey"):
            if not isinstance(record.get(field), str):
                return None

        try:
            public_raw = b64url_decode(record["publicKey"])
            private_raw = b64url_decode(record["privateKey"])
        except ValueError:
            return None
        if len(public_raw) != ED25519_KEY_SIZE or len(private_raw) != ED25519_KEY_SIZE:
            return None

        # A public key that does not belong to the private key would sign
        # payloads the gateway can never verify
        if public_key_from_private(private_raw) != public_raw:
            return None

        return record

    def _create(self) -> DeviceIdentity:
        identity = DeviceIdentity.generate()
        record = {
            "version": IDENTITY_VERSION,
            "createdAtMs": int(time.time() * 1000),
            "deviceId": identity.device_id,
            "publicKey": b64url_encode(identity.public_key),
            "privateKey": b64url_encode(identity.private_key),
        }
        if self._persist(record):
            Logger.success(f"Generated new device identity {identity.device_id[:16]}...")
        else:
            Logger.warning(f"Generated device identity {identity.device_id[:16]}... (not persisted)")
        return identity

    def _persist(self, record: dict) -> bool:
        try:
            return self.storage.store_blob(json.dumps(record), self.key_id)
        except Exception as e:
            Logger.error(f"Failed to persist device identity: {e}")
            return False
