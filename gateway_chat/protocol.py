"""
Protocol definitions for the client-gateway communication.

Every message on the wire is one JSON object ("frame") with a `type`
discriminator:
    req   {type, id, method, params}
    res   {type, id, ok, payload | error}
    event {type, event, payload}
"""

from enum import Enum
from typing import Any, NamedTuple, Optional, Union


class FrameType(str, Enum):
    """Frame discriminators"""
    REQUEST = "req"
    RESPONSE = "res"
    EVENT = "event"


class EventName(str, Enum):
    """Events pushed by the gateway that the client understands"""
    CONNECT_CHALLENGE = "connect.challenge"
    CHAT = "chat"


class Method(str, Enum):
    """Request methods issued by the client"""
    CONNECT = "connect"
    CHAT_HISTORY = "chat.history"
    CHAT_SEND = "chat.send"


class ChatState(str, Enum):
    """States carried by chat events"""
    DELTA = "delta"
    FINAL = "final"
    ERROR = "error"
    USER = "user"


class RequestFrame(NamedTuple):
    """Client -> gateway request"""
    id: str
    method: str
    params: Any

    def to_wire(self) -> dict:
        return {
            "type": FrameType.REQUEST.value,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }


class ResponseFrame(NamedTuple):
    """Gateway -> client response to a request"""
    id: Optional[str]
    ok: bool
    payload: Any = None
    error: Any = None


class EventFrame(NamedTuple):
    """Gateway -> client unsolicited event"""
    event: str
    payload: Any = None


class UnknownFrame(NamedTuple):
    """Valid JSON object with a type we do not handle"""
    raw: dict

    def __str__(self) -> str:
        return f"UnknownFrame(type={self.raw.get('type')!r})"


Frame = Union[RequestFrame, ResponseFrame, EventFrame, UnknownFrame]


class ChatEvent(NamedTuple):
    """Payload of a `chat` event"""
    state: Optional[str]
    run_id: Optional[str]
    message: Any = None
    role: Optional[str] = None
    content: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["ChatEvent"]:
        """Build from an event payload; None if the payload is not an object"""
        if not isinstance(payload, dict):
            return None
        run_id = payload.get("runId")
        return cls(
            state=payload.get("state"),
            run_id=str(run_id) if run_id else None,
            message=payload.get("message"),
            role=payload.get("role"),
            content=payload.get("content"),
        )
