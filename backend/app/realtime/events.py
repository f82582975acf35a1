"""Wire models for the realtime channel.

Inbound frames are JSON objects discriminated by ``type``:
    - message:    {type, to?, room?, content}
    - typing:     {type, to?, room?, isTyping}
    - join_room:  {type, roomId}
    - leave_room: {type, roomId}

Outbound frames are :class:`RealtimeMessage` objects
``{type, payload, userId?, timestamp}``; rejected inbound frames are
answered with ``{type: "error", error}`` to the sender only.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Outbound
# =============================================================================


class MessageType(str, Enum):
    """Type of an outbound realtime message.

    Attributes:
        MESSAGE: Chat message (the only type kept in history).
        NOTIFICATION: Room join/leave notice.
        TYPING: Typing indicator.
        PRESENCE: A user came online or went offline.
    """
    MESSAGE = "message"
    NOTIFICATION = "notification"
    TYPING = "typing"
    PRESENCE = "presence"


class PresenceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class RealtimeMessage(BaseModel):
    """Message delivered to clients and, for chat messages, kept in history."""
    type: MessageType = Field(..., description="Message type")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Type-specific body")
    userId: Optional[str] = Field(default=None, description="Sender's user ID")
    timestamp: datetime = Field(default_factory=utcnow, description="UTC send time")

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict, omitting the sender for system messages."""
        return self.model_dump(mode="json", exclude_none=True)


def presence_message(user_id: str, status: PresenceStatus) -> RealtimeMessage:
    return RealtimeMessage(
        type=MessageType.PRESENCE,
        payload={"userId": user_id, "status": status.value},
    )


def error_frame(error: str) -> Dict[str, Any]:
    return {"type": "error", "error": error}


# =============================================================================
# Inbound
# =============================================================================


class MessageEvent(BaseModel):
    type: Literal["message"]
    to: Optional[str] = None
    room: Optional[str] = None
    content: str

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content is required")
        return value


class TypingEvent(BaseModel):
    type: Literal["typing"]
    to: Optional[str] = None
    room: Optional[str] = None
    isTyping: bool = True


class JoinRoomEvent(BaseModel):
    type: Literal["join_room"]
    roomId: str = Field(..., min_length=1)


class LeaveRoomEvent(BaseModel):
    type: Literal["leave_room"]
    roomId: str = Field(..., min_length=1)


InboundEvent = Annotated[
    Union[MessageEvent, TypingEvent, JoinRoomEvent, LeaveRoomEvent],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter = TypeAdapter(InboundEvent)


def parse_inbound(data: Any) -> Union[MessageEvent, TypingEvent, JoinRoomEvent, LeaveRoomEvent]:
    """Validate a decoded JSON frame into one of the inbound event models.

    Raises:
        pydantic.ValidationError: Unknown ``type`` or invalid fields.
    """
    return _inbound_adapter.validate_python(data)
