"""
Gateway chat client - connection supervisor and public API.

One GatewayChatClient keeps a single authenticated connection to the agent
gateway alive:

    open transport -> connect.challenge -> signed connect -> chat.history
         ^                                                        |
         +------------- close (any reason), fixed delay ----------+

Nothing connection-scoped survives a reconnect: every attempt gets a new
transport, a new request correlator (fresh ids) and a new handshake. Pending
requests are rejected with ConnectionLostError the moment the socket closes.
The transcript itself lives in the ChatReconciler and is kept across
reconnects.

Usage:
    client = GatewayChatClient(load_gateway_config())
    client.start()
    client.wait_connected(timeout=10)
    client.send_message("hello")
    ...
    client.close()
"""

import threading
import uuid
from concurrent.futures import Future
from typing import Any, Callable, Optional, Tuple

from .config import (
    DEFAULT_SESSION_KEY, HISTORY_LIMIT, RECONNECT_DELAY_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
)
from .correlator import ConnectionLostError, NotConnectedError, RequestCorrelator
from .credentials import GatewayConfig
from .handshake import HandshakeController, HandshakeState
from .identity import IdentityStore
from .protocol import ChatEvent, EventFrame, EventName, Frame, Method, ResponseFrame
from .reconciler import ChatMessage, ChatReconciler
from .transport import WebSocketTransport
from .logger import Logger


class GatewayChatClient:
    """
    Long-lived chat client for the agent gateway.

    Thread model: frames are handled on the transport's reader thread, one
    at a time; timeouts and reconnects run on timer threads; public methods
    may be called from any thread.
    """

    def __init__(
        self,
        config: GatewayConfig,
        identity_store: Optional[IdentityStore] = None,
        transport_factory: Optional[Callable[..., Any]] = None,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        history_limit: int = HISTORY_LIMIT,
        flag_send_errors: bool = True,
        on_final: Optional[Callable[[str, str], None]] = None,
        on_run_error: Optional[Callable[[Optional[str], str], None]] = None,
        on_transcript_change: Optional[Callable[[Tuple[ChatMessage, ...]], None]] = None,
        on_connection_change: Optional[Callable[[bool], None]] = None,
        on_connect_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        """
        Initialize the client (no I/O until start()).

        Args:
            config: Gateway location and bearer token
            identity_store: Device identity source (defaults to the durable store)
            transport_factory: Builds a transport; called like WebSocketTransport
            reconnect_delay: Seconds between a close and the next attempt
            request_timeout: Per-request timeout in seconds
            history_limit: Messages requested to seed the transcript
            flag_send_errors: Mark send-failure entries with is_error
            on_final: One-shot side effect per finished run (run_id, text)
            on_run_error: Called for chat error events (run_id, description)
            on_transcript_change: Called with a transcript snapshot on change
            on_connection_change: Called with the new connectivity flag
            on_connect_error: Called when an attempt ends before the handshake
                succeeds (rejected connect, or socket closed early)
        """
        self.config = config
        self.identity_store = identity_store if identity_store is not None else IdentityStore()
        self.transport_factory = transport_factory or WebSocketTransport
        self.reconnect_delay = reconnect_delay
        self.request_timeout = request_timeout
        self.history_limit = history_limit
        self.on_connection_change = on_connection_change
        self.on_connect_error = on_connect_error

        self.reconciler = ChatReconciler(
            on_final=on_final,
            on_run_error=on_run_error,
            on_change=on_transcript_change,
            flag_send_errors=flag_send_errors,
        )

        self._lock = threading.RLock()
        self._epoch = 0
        self._transport = None
        self._correlator: Optional[RequestCorrelator] = None
        self._handshake: Optional[HandshakeController] = None
        self._reconnect_timer: Optional[threading.Timer] = None
        self._closed = True
        self._connected = False
        self._connected_event = threading.Event()
        self._session_key = DEFAULT_SESSION_KEY
        self.connect_attempts = 0
        self._failed_epoch = 0

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def start(self) -> None:
        """Open the first connection; reconnects happen automatically"""
        with self._lock:
            if not self._closed:
                return
            self._closed = False
        self._open_connection()

    def close(self) -> None:
        """
        Tear down: cancel any scheduled reconnect, close the socket and
        reject every outstanding request.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._epoch += 1
            timer, self._reconnect_timer = self._reconnect_timer, None
            transport, self._transport = self._transport, None
            correlator, self._correlator = self._correlator, None
            self._handshake = None
            was_connected = self._set_disconnected()

        if timer is not None:
            timer.cancel()
        if correlator is not None:
            correlator.reject_all(NotConnectedError("client closed"))
        if transport is not None:
            transport.close()
        self.reconciler.reset_runs()
        if was_connected:
            self._notify_connection(False)
        Logger.info("Gateway client closed")

    def send_message(self, text: str) -> Optional[Future]:
        """
        Send a chat message to the active session.

        The message is shown in the transcript immediately; the reply arrives
        through chat events. Any failure (not connected, ok:false, timeout,
        connection lost) ends up in the transcript as an error entry.

        Returns:
            Future of the chat.send payload, or None for blank text
        """
        if not text.strip():
            return None

        self.reconciler.add_user_message(text)

        with self._lock:
            correlator = self._correlator
            session_key = self._session_key

        if correlator is None:
            future: Future = Future()
            future.set_exception(NotConnectedError())
        else:
            future = correlator.send(Method.CHAT_SEND.value, {
                "sessionKey": session_key,
                "message": text,
                # Reply comes back only as chat events, not via external channels
                "deliver": False,
                "idempotencyKey": str(uuid.uuid4()),
            })

        future.add_done_callback(self._on_send_done)
        return future

    def wait_connected(self, timeout: Optional[float] = None) -> bool:
        """Block until the handshake succeeds; False on timeout"""
        return self._connected_event.wait(timeout)

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        """Immutable snapshot of the transcript"""
        return self.reconciler.messages

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_loading(self) -> bool:
        return self.reconciler.is_loading

    @property
    def session_key(self) -> str:
        return self._session_key

    @property
    def handshake_state(self) -> HandshakeState:
        with self._lock:
            handshake = self._handshake
        return handshake.state if handshake is not None else HandshakeState.IDLE

    # ========================================================================
    # CONNECTION LIFECYCLE
    # ========================================================================

    def _open_connection(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._reconnect_timer = None
            self._epoch += 1
            epoch = self._epoch
            self.connect_attempts += 1

            transport = self.transport_factory(
                self.config.url,
                on_open=lambda: self._on_open(epoch),
                on_frame=lambda frame: self._on_frame(epoch, frame),
                on_error=lambda error: self._on_error(epoch, error),
                on_close=lambda code: self._on_close(epoch, code),
                origin=self.config.origin,
            )
            correlator = RequestCorrelator(transport, timeout=self.request_timeout)
            handshake = HandshakeController(
                correlator,
                self.identity_store,
                self.config.token,
                on_connected=lambda session_key, hello: self._on_handshake_connected(epoch, session_key),
                on_failed=lambda error: self._on_handshake_failed(epoch, error),
            )
            self._transport = transport
            self._correlator = correlator
            self._handshake = handshake

        Logger.info(f"Connecting to {self.config.url} (attempt {self.connect_attempts})")
        if not transport.connect():
            return

        with self._lock:
            superseded = epoch != self._epoch
        if superseded:
            transport.close()
            return
        transport.start()

    def _schedule_reconnect(self) -> None:
        with self._lock:
            if self._closed or self._reconnect_timer is not None:
                return
            timer = threading.Timer(self.reconnect_delay, self._open_connection)
            timer.daemon = True
            self._reconnect_timer = timer
        Logger.info(f"Reconnecting in {self.reconnect_delay}s")
        timer.start()

    def _set_disconnected(self) -> bool:
        """Clear connectivity; returns the previous value. Caller holds the lock."""
        was_connected = self._connected
        self._connected = False
        self._connected_event.clear()
        return was_connected

    # ========================================================================
    # TRANSPORT CALLBACKS
    # ========================================================================

    def _on_open(self, epoch: int) -> None:
        with self._lock:
            if epoch != self._epoch:
                return
            handshake = self._handshake
        Logger.info("Gateway socket open")
        handshake.on_transport_open()

    def _on_frame(self, epoch: int, frame: Frame) -> None:
        """Route one frame; runs on the reader thread"""
        with self._lock:
            if epoch != self._epoch:
                return
            handshake = self._handshake
            correlator = self._correlator

        if isinstance(frame, EventFrame):
            if frame.event == EventName.CONNECT_CHALLENGE.value:
                handshake.handle_challenge(frame.payload)
            elif frame.event == EventName.CHAT.value:
                event = ChatEvent.from_payload(frame.payload)
                if event is not None:
                    self.reconciler.handle_event(event)
            else:
                Logger.debug("CLIENT", f"Ignoring event {frame.event}")
        elif isinstance(frame, ResponseFrame):
            correlator.handle_response(frame)
        else:
            Logger.debug("CLIENT", f"Ignoring frame {frame}")

    def _on_error(self, epoch: int, error: Exception) -> None:
        if epoch != self._epoch:
            return
        Logger.warning(f"Gateway transport error: {type(error).__name__}: {error}")

    def _on_close(self, epoch: int, code: Optional[int]) -> None:
        with self._lock:
            if epoch != self._epoch:
                return
            correlator = self._correlator
            was_connected = self._set_disconnected()

        Logger.warning(f"Gateway connection closed (code={code})")
        if correlator is not None:
            correlator.reject_all(ConnectionLostError())
        self.reconciler.reset_runs()
        if was_connected:
            self._notify_connection(False)
        else:
            self._report_connect_error(epoch, ConnectionLostError("connection closed before handshake completed"))
        self._schedule_reconnect()

    # ========================================================================
    # HANDSHAKE CALLBACKS
    # ========================================================================

    def _on_handshake_connected(self, epoch: int, session_key: str) -> None:
        with self._lock:
            if epoch != self._epoch:
                return
            self._session_key = session_key
            self._connected = True
            correlator = self._correlator

        history = correlator.send(Method.CHAT_HISTORY.value, {
            "sessionKey": session_key,
            "limit": self.history_limit,
        })
        history.add_done_callback(lambda future: self._on_history(epoch, future))

        self._notify_connection(True)
        with self._lock:
            if epoch == self._epoch and self._connected:
                self._connected_event.set()

    def _on_handshake_failed(self, epoch: int, error: Exception) -> None:
        with self._lock:
            if epoch != self._epoch:
                return
            transport = self._transport
        Logger.error(f"Gateway handshake failed: {error}")
        self._report_connect_error(epoch, error)
        if transport is not None:
            transport.close()

    def _on_history(self, epoch: int, future: Future) -> None:
        if epoch != self._epoch:
            return
        error = future.exception()
        if error is not None:
            Logger.error(f"Failed to fetch chat history: {error}")
            return
        payload = future.result()
        messages = payload.get("messages") if isinstance(payload, dict) else None
        if isinstance(messages, list):
            self.reconciler.load_history(messages)

    def _on_send_done(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            Logger.error(f"chat.send failed: {error}")
            self.reconciler.record_send_failure(error)

    def _report_connect_error(self, epoch: int, error: Exception) -> None:
        """At most one report per connection attempt"""
        with self._lock:
            if self._failed_epoch == epoch:
                return
            self._failed_epoch = epoch
        if self.on_connect_error:
            self.on_connect_error(error)

    def _notify_connection(self, connected: bool) -> None:
        if self.on_connection_change:
            self.on_connection_change(connected)
