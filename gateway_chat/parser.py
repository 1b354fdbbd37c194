"""
Frame parser for the client-gateway protocol.
Turns one JSON text message into a typed frame.
"""
import json
from typing import Union

from .protocol import (
    Frame, FrameType, RequestFrame, ResponseFrame, EventFrame, UnknownFrame,
)


class FrameParserError(Exception):
    """Base exception for frame parsing errors"""
    pass


class ProtocolError(FrameParserError):
    """Raised when a decoded frame violates the frame envelope"""
    pass


class FrameParser:
    """
    Stateless parser for protocol frames.
    Each websocket message carries exactly one frame, so no buffering is needed.
    """

    def parse(self, data: Union[str, bytes]) -> Frame:
        """
        Parse one message into a frame.

        Args:
            data: Raw message text (bytes are decoded as UTF-8)

        Returns:
            RequestFrame, ResponseFrame, EventFrame or UnknownFrame

        Raises:
            FrameParserError: If the message is not valid JSON
            ProtocolError: If the JSON is not an object with a string `type`
        """
        if isinstance(data, (bytes, bytearray)):
            try:
                data = bytes(data).decode('utf-8')
            except UnicodeDecodeError as e:
                raise FrameParserError(f"Frame is not UTF-8: {e}") from e

        try:
            obj = json.loads(data)
        except ValueError as e:
            raise FrameParserError(f"Invalid JSON: {e}") from e

        if not isinstance(obj, dict):
            raise ProtocolError(f"Frame must be a JSON object, got {type(obj).__name__}")

        frame_type = obj.get("type")
        if not isinstance(frame_type, str):
            raise ProtocolError("Frame has no string 'type' field")

        if frame_type == FrameType.RESPONSE.value:
            frame_id = obj.get("id")
            return ResponseFrame(
                id=str(frame_id) if frame_id is not None else None,
                ok=obj.get("ok") is not False,
                payload=obj.get("payload"),
                error=obj.get("error"),
            )

        if frame_type == FrameType.EVENT.value:
            event = obj.get("event")
            if not isinstance(event, str):
                raise ProtocolError("Event frame has no string 'event' field")
            return EventFrame(event=event, payload=obj.get("payload"))

        if frame_type == FrameType.REQUEST.value:
            return RequestFrame(
                id=str(obj.get("id")),
                method=str(obj.get("method")),
                params=obj.get("params"),
            )

        return UnknownFrame(raw=obj)
