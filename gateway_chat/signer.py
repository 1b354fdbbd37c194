"""
Device auth payload signer.

The gateway rebuilds the same payload string from the connect request and
verifies our signature over it, so the field order and separator below are
part of the wire contract:

    v2|deviceId|clientId|clientMode|role|scope1,scope2|signedAtMs|token|nonce
"""

from typing import NamedTuple, Optional, Sequence

from cryptography.exceptions import InvalidSignature

from .config import AUTH_PAYLOAD_VERSION
from .crypto import load_private_key, load_public_key


class AuthPayload(NamedTuple):
    """Fields covered by the device signature"""
    device_id: str
    client_id: str
    client_mode: str
    role: str
    scopes: Sequence[str]
    signed_at_ms: int
    token: Optional[str]
    nonce: str

    def serialize(self) -> str:
        return build_auth_payload(*self)


def build_auth_payload(
    device_id: str,
    client_id: str,
    client_mode: str,
    role: str,
    scopes: Sequence[str],
    signed_at_ms: int,
    token: Optional[str],
    nonce: str,
) -> str:
    """
    Build the canonical pipe-delimited auth payload.

    Scopes keep their given order; a missing token becomes the empty string.
    """
    return "|".join([
        AUTH_PAYLOAD_VERSION,
        device_id,
        client_id,
        client_mode,
        role,
        ",".join(scopes),
        str(int(signed_at_ms)),
        token or "",
        nonce,
    ])


def sign_payload(payload: str, private_key_raw: bytes) -> bytes:
    """
    Sign the UTF-8 encoding of payload with a raw Ed25519 private key.

    Returns:
        64-byte signature (deterministic for a given key and payload)
    """
    return load_private_key(private_key_raw).sign(payload.encode('utf-8'))


def verify_payload(payload: str, signature: bytes, public_key_raw: bytes) -> bool:
    """Check a signature produced by sign_payload"""
    try:
        load_public_key(public_key_raw).verify(signature, payload.encode('utf-8'))
        return True
    except (InvalidSignature, ValueError):
        return False
