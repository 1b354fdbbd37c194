"""
Scripted in-process gateway for client tests.

FakeGateway plays the server side of the protocol: it issues a
connect.challenge when a socket opens, checks the device signature on the
connect request the same way the real gateway does, and answers chat.history
and chat.send (optionally streaming a reply as delta/final events).

FakeTransport replaces WebSocketTransport. Everything is delivered
synchronously on the calling thread, so a test sees the complete effect of a
call as soon as it returns.
"""

import json
from typing import Any, Dict, List, Optional

from gateway_chat.crypto import b64url_decode, derive_device_id
from gateway_chat.parser import FrameParser
from gateway_chat.signer import build_auth_payload, verify_payload

DEFAULT_TOKEN = "test-token-0123456789"
DEFAULT_SESSION_KEY = "agent:test:main"


class FakeTransport:
    """Drop-in for WebSocketTransport wired to a FakeGateway"""

    def __init__(self, gateway, url, on_open=None, on_frame=None, on_error=None,
                 on_close=None, origin=None, open_timeout=None):
        self.gateway = gateway
        self.url = url
        self.origin = origin
        self.on_open = on_open
        self.on_frame = on_frame
        self.on_error = on_error
        self.on_close = on_close

        self.sent: List[dict] = []
        self.nonce: Optional[str] = None
        self.close_code: Optional[int] = None
        self._connected = False
        self._closed = False
        self._parser = FrameParser()

    def connect(self) -> bool:
        if self.gateway.refuse_connections:
            self._closed = True
            if self.on_error:
                self.on_error(ConnectionRefusedError("connection refused"))
            if self.on_close:
                self.on_close(None)
            return False
        self._connected = True
        return True

    def start(self) -> None:
        if self.on_open:
            self.on_open()
        self.gateway.on_open(self)

    def send_frame(self, frame: dict) -> bool:
        if not self.is_open:
            return False
        self.sent.append(frame)
        self.gateway.receive(self, frame)
        return True

    def deliver(self, frame: dict) -> None:
        """Gateway -> client: serialize and parse like the real transport"""
        if not self.is_open:
            return
        parsed = self._parser.parse(json.dumps(frame))
        if self.on_frame:
            self.on_frame(parsed)

    def close(self) -> None:
        self._shutdown(1000)

    def drop(self, code: int = 1006) -> None:
        """Server-side close (network drop, gateway restart)"""
        self._shutdown(code)

    def _shutdown(self, code: int) -> None:
        if self._closed:
            return
        self._closed = True
        self.close_code = code
        if self.on_close:
            self.on_close(code)

    @property
    def is_open(self) -> bool:
        return self._connected and not self._closed

    def sent_methods(self) -> List[str]:
        return [frame["method"] for frame in self.sent]


class FakeGateway:
    """
    Software simulation of the agent gateway.

    Knobs:
        refuse_connections  transports fail to open
        send_challenge      push connect.challenge on open
        reject_connect      error object returned for connect
        send_error          error object returned for chat.send
        silent_methods      methods that never get a response
        auto_reply          stream reply_deltas + final after chat.send
    """

    def __init__(self, token: str = DEFAULT_TOKEN, session_key: str = DEFAULT_SESSION_KEY):
        self.token = token
        self.session_key = session_key
        self.history: List[Dict[str, Any]] = []

        self.refuse_connections = False
        self.send_challenge = True
        self.reject_connect: Any = None
        self.send_error: Any = None
        self.silent_methods = set()
        self.auto_reply = True
        self.reply_deltas = ["Hel", "Hello", "Hello there"]

        self.transports: List[FakeTransport] = []
        self.requests: List[tuple] = []
        self.connect_params: List[dict] = []
        self.auth_results: List[bool] = []
        self._nonce_counter = 0
        self._run_counter = 0

    def factory(self, url, **kwargs) -> FakeTransport:
        """Pass as transport_factory"""
        transport = FakeTransport(self, url, **kwargs)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]

    # ========================================================================
    # Server behaviour
    # ========================================================================

    def on_open(self, transport: FakeTransport) -> None:
        if not self.send_challenge:
            return
        self._nonce_counter += 1
        transport.nonce = f"nonce-{self._nonce_counter}"
        transport.deliver({
            "type": "event",
            "event": "connect.challenge",
            "payload": {"nonce": transport.nonce, "ts": 1700000000000},
        })

    def receive(self, transport: FakeTransport, frame: dict) -> None:
        method = frame.get("method")
        params = frame.get("params")
        self.requests.append((method, params))
        if method in self.silent_methods:
            return

        if method == "connect":
            self._handle_connect(transport, frame["id"], params)
        elif method == "chat.history":
            self.respond(transport, frame["id"], payload={
                "sessionKey": params.get("sessionKey"),
                "messages": list(self.history),
            })
        elif method == "chat.send":
            self._handle_chat_send(transport, frame["id"], params)
        else:
            self.respond(transport, frame["id"], error={"code": "UNKNOWN_METHOD", "message": f"unknown method {method}"})

    def _handle_connect(self, transport: FakeTransport, request_id: str, params: dict) -> None:
        self.connect_params.append(params)
        valid = self.check_device_auth(transport, params)
        self.auth_results.append(valid)

        if self.reject_connect is not None:
            self.respond(transport, request_id, error=self.reject_connect)
        elif not valid:
            self.respond(transport, request_id, error={"code": "UNAUTHORIZED", "message": "device signature invalid"})
        else:
            self.respond(transport, request_id, payload={
                "type": "hello-ok",
                "protocol": 3,
                "snapshot": {"sessionDefaults": {"mainSessionKey": self.session_key}},
            })

    def _handle_chat_send(self, transport: FakeTransport, request_id: str, params: dict) -> None:
        if self.send_error is not None:
            self.respond(transport, request_id, error=self.send_error)
            return

        self._run_counter += 1
        run_id = f"run-{self._run_counter}"
        self.respond(transport, request_id, payload={"runId": run_id, "status": "started"})
        if self.auto_reply:
            self.stream_reply(run_id, self.reply_deltas, transport=transport)

    def check_device_auth(self, transport: FakeTransport, params: dict) -> bool:
        """Rebuild the auth payload and verify the device signature"""
        try:
            device = params["device"]
            client = params["client"]
            public_raw = b64url_decode(device["publicKey"])
            payload = build_auth_payload(
                device_id=device["id"],
                client_id=client["id"],
                client_mode=client["mode"],
                role=params["role"],
                scopes=params["scopes"],
                signed_at_ms=device["signedAt"],
                token=params["auth"]["token"],
                nonce=device["nonce"],
            )
            signature = b64url_decode(device["signature"])
        except (KeyError, TypeError, ValueError):
            return False

        return (
            device["nonce"] == transport.nonce
            and params["auth"]["token"] == self.token
            and derive_device_id(public_raw) == device["id"]
            and verify_payload(payload, signature, public_raw)
        )

    # ========================================================================
    # Frames
    # ========================================================================

    def respond(self, transport: FakeTransport, request_id: str, payload: Any = None, error: Any = None) -> None:
        frame = {"type": "res", "id": request_id, "ok": error is None}
        if error is None:
            frame["payload"] = payload
        else:
            frame["error"] = error
        transport.deliver(frame)

    def emit_chat(self, payload: dict, transport: Optional[FakeTransport] = None) -> None:
        (transport or self.current).deliver({"type": "event", "event": "chat", "payload": payload})

    def stream_reply(self, run_id: str, deltas: List[str], final: Optional[str] = None,
                     transport: Optional[FakeTransport] = None) -> None:
        """Cumulative deltas followed by a final carrying the full text"""
        for text in deltas:
            self.emit_chat(self._chat_payload(run_id, "delta", text), transport)
        final_text = final if final is not None else (deltas[-1] if deltas else "")
        self.emit_chat(self._chat_payload(run_id, "final", final_text), transport)

    def _chat_payload(self, run_id: str, state: str, text: str) -> dict:
        return {
            "runId": run_id,
            "sessionKey": self.session_key,
            "state": state,
            "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
        }
