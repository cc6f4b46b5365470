"""WebSocket frames.

Every frame is ``{"type": ..., "data": {...}}``. Inbound frames are a tagged
union on ``type``; each variant validates its own payload.
"""
from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class JoinData(BaseModel):
    user_id: int
    username: str


class SendMessageData(BaseModel):
    connection_id: int
    sender_id: int
    content: str = ""


class TypingData(BaseModel):
    connection_id: int


class RequestSentData(BaseModel):
    to_username: str
    from_username: str
    request_id: int


class RequestAcceptedData(BaseModel):
    connection_id: int
    user_a_id: int
    user_b_id: int


class DisconnectData(BaseModel):
    connection_id: int
    user_id: int


class JoinEvent(BaseModel):
    type: Literal["join"]
    data: JoinData


class SendMessageEvent(BaseModel):
    type: Literal["send_message"]
    data: SendMessageData


class TypingStartEvent(BaseModel):
    type: Literal["typing_start"]
    data: TypingData


class TypingStopEvent(BaseModel):
    type: Literal["typing_stop"]
    data: TypingData


class RequestSentEvent(BaseModel):
    type: Literal["request_sent"]
    data: RequestSentData


class RequestAcceptedEvent(BaseModel):
    type: Literal["request_accepted"]
    data: RequestAcceptedData


class DisconnectEvent(BaseModel):
    type: Literal["disconnect"]
    data: DisconnectData


class PingEvent(BaseModel):
    type: Literal["ping"]
    data: dict[str, Any] = {}


WsInbound = Annotated[
    Union[
        JoinEvent,
        SendMessageEvent,
        TypingStartEvent,
        TypingStopEvent,
        RequestSentEvent,
        RequestAcceptedEvent,
        DisconnectEvent,
        PingEvent,
    ],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[WsInbound] = TypeAdapter(WsInbound)


def parse_inbound(raw: str | bytes) -> WsInbound:
    """Raise ``pydantic.ValidationError`` for malformed or unknown frames."""
    return _inbound_adapter.validate_json(raw)


class Outbound(StrEnum):
    JOINED = "joined"
    NEW_MESSAGE = "new_message"
    USER_TYPING = "user_typing"
    NEW_CONNECTION_REQUEST = "new_connection_request"
    CONNECTION_ESTABLISHED = "connection_established"
    CONNECTION_ENDED = "connection_ended"
    USER_ONLINE = "user_online"
    USER_OFFLINE = "user_offline"
    ERROR = "error"
    PONG = "pong"


class WsOutbound(BaseModel):
    """Server -> Client."""

    type: Outbound
    data: dict[str, Any] = {}


def encode_outbound(event: Outbound, data: dict[str, Any] | None = None) -> str:
    return WsOutbound(type=event, data=data or {}).model_dump_json()
