"""
Request/response correlation over the shared gateway transport.

Each request gets a fresh id from a per-connection counter and a Future that
settles exactly once: on the matching `res` frame, on timeout, or when the
connection is lost. Whatever settles it first removes the pending entry, so
late frames for that id are ignored.
"""

import json
import threading
from concurrent.futures import Future
from typing import Any, Dict, NamedTuple, Optional

from .config import REQUEST_TIMEOUT_SECONDS
from .protocol import RequestFrame, ResponseFrame
from .logger import Logger


class GatewayError(Exception):
    """Base exception for correlated request failures"""
    pass


class NotConnectedError(GatewayError):
    """Raised when a request is sent while the transport is not open"""

    def __init__(self, message: str = "not connected"):
        super().__init__(message)


class ConnectionLostError(NotConnectedError):
    """Raised for requests still pending when the connection goes away"""

    def __init__(self, message: str = "connection lost"):
        super().__init__(message)


class RequestTimeoutError(GatewayError):
    """Raised when no response arrives before the deadline"""
    pass


class GatewayRequestError(GatewayError):
    """Raised when the gateway answers with ok:false"""

    def __init__(self, method: str, error: Any):
        self.method = method
        self.error = error
        super().__init__(self.describe(error))

    @staticmethod
    def describe(error: Any) -> str:
        """Gateway-supplied message, or the JSON of the error object"""
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        try:
            return json.dumps(error)
        except (TypeError, ValueError):
            return repr(error)


class PendingRequest(NamedTuple):
    id: str
    method: str
    future: Future
    timer: Optional[threading.Timer]


class RequestCorrelator:
    """
    Maps outgoing requests to pending futures by id.

    One instance per connection: ids come from a strictly increasing counter
    and are never reused for the life of the instance.
    """

    def __init__(self, transport, timeout: float = REQUEST_TIMEOUT_SECONDS, id_prefix: str = "r"):
        """
        Args:
            transport: Object with send_frame(dict) -> bool and is_open
            timeout: Seconds before an unanswered request is rejected
            id_prefix: Prefix of generated request ids ("r-1", "r-2", ...)
        """
        self.transport = transport
        self.timeout = timeout
        self.id_prefix = id_prefix
        self._counter = 0
        self._pending: Dict[str, PendingRequest] = {}
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            self._counter += 1
            return f"{self.id_prefix}-{self._counter}"

    def send(self, method: str, params: Any, request_id: Optional[str] = None) -> Future:
        """
        Send a request and return a Future for its payload.

        Args:
            method: Gateway method name
            params: JSON-serializable params
            request_id: Fixed id to use instead of a generated one

        Returns:
            Future resolving to the response payload. It fails with
            NotConnectedError immediately if the transport is not open,
            GatewayRequestError on ok:false, RequestTimeoutError after the
            deadline, or ConnectionLostError if the connection drops first.
        """
        future: Future = Future()
        future.set_running_or_notify_cancel()

        if not self.transport.is_open:
            future.set_exception(NotConnectedError())
            return future

        frame_id = request_id if request_id is not None else self.next_id()

        timer = None
        if self.timeout:
            timer = threading.Timer(self.timeout, self._expire, args=(frame_id,))
            timer.daemon = True

        with self._lock:
            if frame_id in self._pending:
                raise ValueError(f"Request id already pending: {frame_id}")
            self._pending[frame_id] = PendingRequest(frame_id, method, future, timer)

        frame = RequestFrame(id=frame_id, method=method, params=params)
        if not self.transport.send_frame(frame.to_wire()):
            self._settle(frame_id, error=NotConnectedError())
            return future

        if timer is not None:
            timer.start()
        return future

    def handle_response(self, frame: ResponseFrame) -> bool:
        """
        Settle the pending request matching a response frame.

        Returns:
            True if the frame matched a pending request, False if it was
            unknown or already settled.
        """
        if frame.id is None:
            return False

        with self._lock:
            entry = self._pending.get(frame.id)
        if entry is None:
            Logger.debug("CORRELATOR", f"Ignoring response for unknown id {frame.id}")
            return False

        if frame.ok:
            return self._settle(frame.id, result=frame.payload)
        return self._settle(frame.id, error=GatewayRequestError(entry.method, frame.error))

    def reject_all(self, error: Optional[Exception] = None) -> int:
        """
        Fail every pending request (connection lost or client closed).

        Returns:
            Number of requests rejected
        """
        with self._lock:
            ids = list(self._pending)
        count = 0
        for frame_id in ids:
            if self._settle(frame_id, error=error if error is not None else ConnectionLostError()):
                count += 1
        return count

    def is_pending(self, frame_id: str) -> bool:
        with self._lock:
            return frame_id in self._pending

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _expire(self, frame_id: str) -> None:
        with self._lock:
            entry = self._pending.get(frame_id)
        if entry is None:
            return
        if self._settle(frame_id, error=RequestTimeoutError(f"timeout waiting for {entry.method}")):
            Logger.warning(f"Request {frame_id} ({entry.method}) timed out after {self.timeout}s")

    def _settle(self, frame_id: str, result: Any = None, error: Optional[Exception] = None) -> bool:
        """Remove the entry and settle its future; first caller wins"""
        with self._lock:
            entry = self._pending.pop(frame_id, None)
        if entry is None:
            return False

        if entry.timer is not None:
            entry.timer.cancel()

        if error is not None:
            entry.future.set_exception(error)
        else:
            entry.future.set_result(result)
        return True
