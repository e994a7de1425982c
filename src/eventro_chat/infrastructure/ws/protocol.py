"""Wire protocol for /ws/chat: JSON text frames with camelCase fields."""
from __future__ import annotations

from datetime import datetime
from enum import IntEnum, StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from eventro_chat.domain.entities.message import Message


class ClientEvent(StrEnum):
    AUTHENTICATE = "authenticate"
    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    SEND_MESSAGE = "send_message"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    MARK_READ = "mark_read"
    PING = "ping"


class ServerEvent(StrEnum):
    AUTHENTICATED = "authenticated"
    JOINED = "joined"
    LEFT = "left"
    MESSAGE_HISTORY = "message_history"
    NEW_MESSAGE = "new_message"
    MESSAGE_DELIVERED = "message_delivered"
    TYPING_INDICATOR = "typing_indicator"
    READ_RECEIPT = "read_receipt"
    USER_ONLINE = "user_online"
    USER_OFFLINE = "user_offline"
    ERROR = "error"
    PONG = "pong"


class CloseCode(IntEnum):
    NORMAL = 1000
    GOING_AWAY = 1001
    INTERNAL_ERROR = 4000
    AUTH_REQUIRED = 4001
    INVALID_TOKEN = 4002
    TOKEN_EXPIRED = 4003
    UNKNOWN_USER = 4004
    AUTH_TIMEOUT = 4008
    IDLE_TIMEOUT = 4009


# Close codes after which a client must not reconnect with the same credential.
AUTH_CLOSE_CODES = frozenset(
    {CloseCode.AUTH_REQUIRED, CloseCode.INVALID_TOKEN, CloseCode.TOKEN_EXPIRED, CloseCode.UNKNOWN_USER}
)

AUTH_FAILURE_CLOSE_CODES: dict[str, CloseCode] = {
    "missing": CloseCode.AUTH_REQUIRED,
    "malformed": CloseCode.INVALID_TOKEN,
    "invalid_signature": CloseCode.INVALID_TOKEN,
    "expired": CloseCode.TOKEN_EXPIRED,
    "unknown_user": CloseCode.UNKNOWN_USER,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WsInbound(_CamelModel):
    """Client → Server. Fields a given type does not use are ignored."""

    type: str
    conversation_id: int | None = None
    content: str | None = None
    token: str | None = None


class MessageOut(_CamelModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    created_at: datetime
    is_deleted: bool = False

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @classmethod
    def of(cls, message: Message) -> MessageOut:
        return cls.model_validate(message)


class WsOutbound(_CamelModel):
    """Server → Client."""

    type: ServerEvent

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Authenticated(WsOutbound):
    type: Literal[ServerEvent.AUTHENTICATED] = ServerEvent.AUTHENTICATED
    user_id: int
    display_name: str


class Joined(WsOutbound):
    type: Literal[ServerEvent.JOINED] = ServerEvent.JOINED
    conversation_id: int


class Left(WsOutbound):
    type: Literal[ServerEvent.LEFT] = ServerEvent.LEFT
    conversation_id: int


class MessageHistory(WsOutbound):
    type: Literal[ServerEvent.MESSAGE_HISTORY] = ServerEvent.MESSAGE_HISTORY
    conversation_id: int
    messages: list[MessageOut] = Field(default_factory=list)
    # Older messages exist beyond this window; page back with ``next_cursor``.
    has_more: bool = False
    next_cursor: str | None = None


class NewMessage(WsOutbound):
    type: Literal[ServerEvent.NEW_MESSAGE] = ServerEvent.NEW_MESSAGE
    message: MessageOut


class MessageDelivered(WsOutbound):
    type: Literal[ServerEvent.MESSAGE_DELIVERED] = ServerEvent.MESSAGE_DELIVERED
    message_id: int


class TypingIndicator(WsOutbound):
    type: Literal[ServerEvent.TYPING_INDICATOR] = ServerEvent.TYPING_INDICATOR
    conversation_id: int
    user_id: int
    is_typing: bool


class ReadReceipt(WsOutbound):
    type: Literal[ServerEvent.READ_RECEIPT] = ServerEvent.READ_RECEIPT
    conversation_id: int
    user_id: int
    timestamp: datetime


class PresenceChanged(WsOutbound):
    type: Literal[ServerEvent.USER_ONLINE, ServerEvent.USER_OFFLINE]
    user_id: int


class ErrorEvent(WsOutbound):
    type: Literal[ServerEvent.ERROR] = ServerEvent.ERROR
    message: str
    code: str
    # Type of the inbound event that failed, when it could be parsed.
    request_type: str | None = None


class Pong(WsOutbound):
    type: Literal[ServerEvent.PONG] = ServerEvent.PONG
