"""
Connect handshake with the gateway.

The gateway initiates: after the socket opens it pushes a
`connect.challenge` event carrying a nonce. We answer with one `connect`
request whose device block is signed over the canonical auth payload
(see signer.py). A successful response opens the session and tells us which
session key to use for chat.

States:
    IDLE -> AWAITING_CHALLENGE -> AUTHENTICATING -> CONNECTED
                                                 -> FAILED
FAILED is terminal for the connection; reconnecting is the supervisor's job.
"""

import time
from concurrent.futures import Future
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from .config import (
    CLIENT_ID, CLIENT_MODE, CLIENT_PLATFORM, CLIENT_ROLE, CLIENT_VERSION,
    CONNECT_REQUEST_ID, DEFAULT_SESSION_KEY, PROTOCOL_VERSION, SCOPES,
)
from .correlator import GatewayError, RequestCorrelator
from .crypto import b64url_encode
from .identity import IdentityStore
from .protocol import Method
from .signer import AuthPayload, sign_payload
from .logger import Logger


class HandshakeState(Enum):
    IDLE = "idle"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    FAILED = "failed"


def session_key_from_hello(payload: Any, default: str = DEFAULT_SESSION_KEY) -> str:
    """
    Pull sessionDefaults.mainSessionKey out of a connect response payload.
    The key normally sits under `snapshot`; a top-level sessionDefaults is
    accepted too.
    """
    if isinstance(payload, dict):
        for container in (payload.get("snapshot"), payload):
            if not isinstance(container, dict):
                continue
            defaults = container.get("sessionDefaults")
            if isinstance(defaults, dict):
                key = defaults.get("mainSessionKey")
                if isinstance(key, str) and key:
                    return key
    return default


class HandshakeController:
    """
    Drives the challenge/response exchange for one connection.

    All methods except the connect-response callback are called from the
    transport's reader thread.
    """

    def __init__(
        self,
        correlator: RequestCorrelator,
        identity_store: IdentityStore,
        token: Optional[str],
        on_connected: Optional[Callable[[str, Any], None]] = None,
        on_failed: Optional[Callable[[Exception], None]] = None,
        scopes: Sequence[str] = SCOPES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            correlator: Correlator of the connection being authenticated
            identity_store: Source of the device keypair
            token: Bearer token from the credential provider
            on_connected: Called with (session_key, hello_payload) on success
            on_failed: Called with the error on failure
            scopes: Requested operator scopes (order is significant)
            clock: Time source in seconds, for signedAt
        """
        self.correlator = correlator
        self.identity_store = identity_store
        self.token = token
        self.on_connected = on_connected
        self.on_failed = on_failed
        self.scopes = list(scopes)
        self.clock = clock

        self.state = HandshakeState.IDLE
        self.session_key: Optional[str] = None
        self.error: Optional[Exception] = None

    def on_transport_open(self) -> None:
        """Socket is open; wait for the gateway's challenge"""
        if self.state == HandshakeState.IDLE:
            self.state = HandshakeState.AWAITING_CHALLENGE
            Logger.debug("HANDSHAKE", "Awaiting connect.challenge")

    def handle_challenge(self, payload: Any) -> bool:
        """
        Answer a connect.challenge with a signed connect request.

        Returns:
            True if a connect request was issued. A challenge outside
            AWAITING_CHALLENGE is ignored: each nonce is used once.
        """
        if self.state != HandshakeState.AWAITING_CHALLENGE:
            Logger.debug("HANDSHAKE", f"Ignoring challenge in state {self.state.value}")
            return False

        self.state = HandshakeState.AUTHENTICATING
        nonce = payload.get("nonce") if isinstance(payload, dict) else None
        nonce = str(nonce) if nonce is not None else ""

        try:
            params = self.build_connect_params(nonce)
        except Exception as e:
            Logger.error(f"Device identity / connect error: {e}")
            self._fail(e)
            return False

        future = self.correlator.send(Method.CONNECT.value, params, request_id=CONNECT_REQUEST_ID)
        future.add_done_callback(self._on_connect_response)
        return True

    def build_connect_params(self, nonce: str) -> dict:
        """Build the connect request params, signing a fresh auth payload"""
        identity = self.identity_store.load_or_create()
        signed_at = int(self.clock() * 1000)

        payload = AuthPayload(
            device_id=identity.device_id,
            client_id=CLIENT_ID,
            client_mode=CLIENT_MODE,
            role=CLIENT_ROLE,
            scopes=self.scopes,
            signed_at_ms=signed_at,
            token=self.token,
            nonce=nonce,
        ).serialize()
        signature = sign_payload(payload, identity.private_key)

        return {
            "minProtocol": PROTOCOL_VERSION,
            "maxProtocol": PROTOCOL_VERSION,
            "client": {
                "id": CLIENT_ID,
                "version": CLIENT_VERSION,
                "platform": CLIENT_PLATFORM,
                "mode": CLIENT_MODE,
            },
            "role": CLIENT_ROLE,
            "scopes": list(self.scopes),
            "auth": {"token": self.token},
            "device": {
                "id": identity.device_id,
                "publicKey": identity.public_key_b64,
                "signature": b64url_encode(signature),
                "signedAt": signed_at,
                "nonce": nonce,
            },
        }

    def _on_connect_response(self, future: Future) -> None:
        if self.state != HandshakeState.AUTHENTICATING:
            return

        try:
            hello = future.result()
        except GatewayError as e:
            Logger.error(f"Connect failed: {e}")
            self._fail(e)
            return

        self.session_key = session_key_from_hello(hello)
        self.state = HandshakeState.CONNECTED
        Logger.success(f"Connected to gateway (session {self.session_key})")
        if self.on_connected:
            self.on_connected(self.session_key, hello)

    def _fail(self, error: Exception) -> None:
        self.state = HandshakeState.FAILED
        self.error = error
        if self.on_failed:
            self.on_failed(error)

    @property
    def is_connected(self) -> bool:
        return self.state == HandshakeState.CONNECTED
