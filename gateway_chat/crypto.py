"""
Ed25519 key helpers for device identity.

Keys travel as raw 32-byte values; on the wire and on disk they are
base64url-encoded without padding.
"""

import base64
import binascii
import hashlib
from typing import Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey, Ed25519PublicKey,
)

# Crypto constants
ED25519_KEY_SIZE = 32
ED25519_SIGNATURE_SIZE = 64


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url"""
    return base64.urlsafe_b64encode(data).rstrip(b'=').decode('ascii')


def b64url_decode(text: str) -> bytes:
    """
    Decode base64url, with or without padding.

    Raises:
        ValueError: If the text is not valid base64url
    """
    padded = text + '=' * (-len(text) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode('ascii'))
    except (UnicodeEncodeError, binascii.Error) as e:
        raise ValueError(f"Invalid base64url: {e}") from e


def derive_device_id(public_key_raw: bytes) -> str:
    """Device id is the lowercase hex SHA-256 of the raw public key"""
    return hashlib.sha256(public_key_raw).hexdigest()


def generate_keypair() -> Tuple[bytes, bytes]:
    """
    Generate a fresh Ed25519 keypair.

    Returns:
        (public_key_raw, private_key_raw), 32 bytes each
    """
    privkey = Ed25519PrivateKey.generate()
    private_raw = privkey.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return _public_bytes(privkey.public_key()), private_raw


def public_key_from_private(private_key_raw: bytes) -> bytes:
    """
    Derive the raw public key for a raw private key.

    Raises:
        ValueError: If the private key is not 32 bytes
    """
    privkey = Ed25519PrivateKey.from_private_bytes(private_key_raw)
    return _public_bytes(privkey.public_key())


def load_private_key(private_key_raw: bytes) -> Ed25519PrivateKey:
    return Ed25519PrivateKey.from_private_bytes(private_key_raw)


def load_public_key(public_key_raw: bytes) -> Ed25519PublicKey:
    return Ed25519PublicKey.from_public_bytes(public_key_raw)


def _public_bytes(pubkey: Ed25519PublicKey) -> bytes:
    return pubkey.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
