"""
WebSocket transport for the client-gateway protocol.
"""

import json
import threading
from typing import Any, Callable, Optional

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect as ws_connect

from .config import OPEN_TIMEOUT_SECONDS
from .parser import FrameParser, FrameParserError
from .protocol import Frame
from .logger import Logger


class WebSocketTransport:
    """
    Manages one websocket connection to the gateway.
    Runs a background thread that reads messages, parses them into frames
    and delivers them one at a time, in arrival order.

    Lifecycle callbacks:
        on_open()            socket is open
        on_frame(frame)      a parsed frame arrived
        on_error(exc)        transport fault (always followed by on_close)
        on_close(code)       socket closed; fires exactly once

    An instance is single-use: after on_close no further frames are
    delivered and a new instance must be created to reconnect.
    Malformed frames are dropped without being reported.
    """

    def __init__(
        self,
        url: str,
        on_open: Optional[Callable[[], None]] = None,
        on_frame: Optional[Callable[[Frame], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_close: Optional[Callable[[Optional[int]], None]] = None,
        origin: Optional[str] = None,
        open_timeout: float = OPEN_TIMEOUT_SECONDS,
    ) -> None:
        """
        Initialize the transport.

        Args:
            url: Gateway websocket URL (e.g., 'ws://127.0.0.1:18789')
            on_open: Callback called once the socket is open
            on_frame: Callback called for each parsed frame
            on_error: Callback called when a transport fault occurs
            on_close: Callback called with the close code when the socket closes
            origin: Origin header to present to the gateway
            open_timeout: Seconds to wait for the opening handshake
        """
        self.url = url
        self.origin = origin
        self.open_timeout = open_timeout
        self.on_open = on_open
        self.on_frame = on_frame
        self.on_error = on_error
        self.on_close = on_close

        self._ws: Optional[ClientConnection] = None
        self._parser = FrameParser()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._closed = False
        self._close_notified = False

    def connect(self) -> bool:
        """
        Open the websocket.

        Returns:
            True if the socket is open, False otherwise. On failure on_error
            and on_close have already fired.
        """
        try:
            ws = ws_connect(self.url, origin=self.origin, open_timeout=self.open_timeout)
        except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as e:
            self._closed = True
            self._report_error(e)
            self._notify_close(None)
            return False

        with self._state_lock:
            closed = self._closed
            if not closed:
                self._ws = ws
        if closed:
            # close() ran while the opening handshake was in flight
            Logger.debug("TRANSPORT", "Closed during connect, dropping socket")
            ws.close()
            return False

        Logger.debug("TRANSPORT", f"Connected to {self.url}")
        return True

    def start(self) -> None:
        """Fire on_open and start the background reading thread"""
        if self._thread is not None:
            return
        if self._ws is None:
            raise RuntimeError("Transport not connected")

        if self.on_open:
            self.on_open()

        self._thread = threading.Thread(target=self._read_loop, daemon=True, name="GatewayReader")
        self._thread.start()

    def _read_loop(self) -> None:
        """Background thread that reads and dispatches messages until close"""
        ws = self._ws
        try:
            for message in ws:
                if self._closed:
                    break
                self._handle_message(message)
        except ConnectionClosed as e:
            if not self._closed:
                self._report_error(e)
        except Exception as e:
            self._report_error(e)
            ws.close()
        finally:
            self._closed = True
            self._notify_close(ws.protocol.close_code)

    def _handle_message(self, message: Any) -> None:
        try:
            frame = self._parser.parse(message)
        except FrameParserError as e:
            Logger.debug("TRANSPORT", f"Dropped malformed frame: {e}")
            return

        Logger.debug("RX", str(frame)[:400])
        if self.on_frame:
            self.on_frame(frame)

    def send_frame(self, frame: dict) -> bool:
        """
        Send one frame as a JSON text message.

        Args:
            frame: JSON-serializable frame object

        Returns:
            True if sent successfully
        """
        if not self.is_open:
            return False

        raw = json.dumps(frame, separators=(',', ':'))
        try:
            self._ws.send(raw)
        except ConnectionClosed:
            return False
        except (OSError, RuntimeError) as e:
            self._report_error(e)
            return False

        Logger.debug("TX", raw[:200])
        return True

    def close(self) -> None:
        """Close the socket; on_close fires from the reader thread"""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            ws = self._ws
        if ws is not None:
            ws.close()
        if self._thread is None:
            self._notify_close(None)

    def _report_error(self, error: Exception) -> None:
        if self.on_error:
            self.on_error(error)

    def _notify_close(self, code: Optional[int]) -> None:
        with self._state_lock:
            if self._close_notified:
                return
            self._close_notified = True
        if self.on_close:
            self.on_close(code)

    @property
    def is_open(self) -> bool:
        """Check if the socket is open and not closing"""
        return self._ws is not None and not self._closed
